"""Profile repositories - row access for ambassador profiles"""

import logging
from typing import Any, Optional

from sqlalchemy import MetaData, Table, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, NoSuchTableError

from ...backend.client import BackendClient
from ...backend.errors import BackendError
from ...schema.catalog import get_migration

logger = logging.getLogger(__name__)

PROFILE_TABLE = get_migration("ambassador_profile").table

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class RestProfileRepository:
    """Profiles through the backend's row API"""

    def __init__(self, client: BackendClient, table: str = PROFILE_TABLE):
        self.client = client
        self.table = table

    def get(self, profile_id: str) -> Optional[dict[str, Any]]:
        return self.client.select_one(self.table, {"id": profile_id})

    def upsert(self, record: dict[str, Any]) -> dict[str, Any]:
        return self.client.upsert(self.table, record, on_conflict="id")


class SqlProfileRepository:
    """
    Profiles through a direct SQLAlchemy connection.

    The table is reflected on every call so columns added by reconciliation
    are visible without a restart.
    """

    def __init__(self, engine: Engine, table: str = PROFILE_TABLE, schema: Optional[str] = None):
        if engine.dialect.name not in _INSERT_BY_DIALECT:
            raise ValueError(f"Upsert is not supported for dialect {engine.dialect.name}")
        self.engine = engine
        self.table = table
        self.schema = schema

    def _reflect(self) -> Table:
        try:
            return Table(self.table, MetaData(), schema=self.schema, autoload_with=self.engine)
        except NoSuchTableError as e:
            raise BackendError(f'relation "{self.table}" does not exist', code="42P01") from e

    def get(self, profile_id: str) -> Optional[dict[str, Any]]:
        table = self._reflect()
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(table).where(table.c.id == profile_id)).mappings().first()
        except DBAPIError as e:
            raise BackendError(str(e.orig), code=getattr(e.orig, "pgcode", None)) from e
        return dict(row) if row else None

    def upsert(self, record: dict[str, Any]) -> dict[str, Any]:
        table = self._reflect()

        unknown = [key for key in record if key not in table.c]
        if unknown:
            raise BackendError(
                f"Could not find the '{unknown[0]}' column of '{self.table}'",
                code="PGRST204",
                details=", ".join(unknown),
            )

        insert = _INSERT_BY_DIALECT[self.engine.dialect.name]
        stmt = insert(table).values(**record)
        updates = {key: stmt.excluded[key] for key in record if key != "id"}
        if "updated_at" in table.c:
            updates["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.id], set_=updates)
        stmt = stmt.returning(*table.c)

        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).mappings().first()
        except DBAPIError as e:
            raise BackendError(str(e.orig), code=getattr(e.orig, "pgcode", None)) from e

        if row is None:
            raise BackendError(f"Upsert into {self.table} returned no row", code="EMPTY_RESULT")
        return dict(row)
