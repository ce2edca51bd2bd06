"""FastAPI dependencies - pick REST or direct-database plumbing from configuration"""

from typing import Iterator, Optional

from fastapi import Depends, HTTPException

from . import database
from .backend.client import BackendClient
from .config import BACKEND_SERVICE_KEY, BACKEND_URL, DB_SCHEMA
from .domain.profiles.repository import RestProfileRepository, SqlProfileRepository
from .domain.profiles.service import ProfileService
from .schema.channel import EngineSqlChannel, RpcSqlChannel, SqlChannel
from .schema.reconcile import SchemaReconciler


def get_backend_client() -> Iterator[Optional[BackendClient]]:
    """REST client per request; None when a direct database engine is configured"""
    if database.engine is not None:
        yield None
        return

    if not BACKEND_URL or not BACKEND_SERVICE_KEY:
        raise HTTPException(status_code=503, detail="Backend is not configured")

    client = BackendClient(BACKEND_URL, BACKEND_SERVICE_KEY)
    try:
        yield client
    finally:
        client.close()


def get_sql_channel(client: Optional[BackendClient] = Depends(get_backend_client)) -> SqlChannel:
    if client is None:
        return EngineSqlChannel(database.engine)
    return RpcSqlChannel(client)


def get_reconciler(
    channel: SqlChannel = Depends(get_sql_channel),
    client: Optional[BackendClient] = Depends(get_backend_client),
) -> SchemaReconciler:
    return SchemaReconciler(
        channel,
        schema=DB_SCHEMA,
        table_probe=client.table_reachable if client is not None else None,
    )


def get_profile_service(
    client: Optional[BackendClient] = Depends(get_backend_client),
    reconciler: SchemaReconciler = Depends(get_reconciler),
) -> ProfileService:
    """Dependency injection for ProfileService"""
    if client is None:
        engine = database.engine
        schema = DB_SCHEMA if engine.dialect.name == "postgresql" else None
        repo = SqlProfileRepository(engine, schema=schema)
    else:
        repo = RestProfileRepository(client)
    return ProfileService(repo, reconciler)
