"""Admin router - run named schema migrations and check column status"""

import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...backend.errors import BackendError, ChannelUnavailableError
from ...config import ADMIN_API_KEY
from ...deps import get_reconciler
from ...schema.catalog import UnknownMigrationError, get_migration
from ...schema.reconcile import SchemaReconciler, render_script

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """Shared-secret check for admin routes"""
    if not ADMIN_API_KEY:
        raise HTTPException(status_code=503, detail="Admin API is not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, ADMIN_API_KEY):
        logger.warning("⚠️ Rejected admin request with missing or wrong X-Admin-Key")
        raise HTTPException(status_code=403, detail="Forbidden")


class MigrationRequest(BaseModel):
    action: str
    backfill: bool = False


@router.post("/db-migration", dependencies=[Depends(require_admin)])
async def run_db_migration(
    data: MigrationRequest, reconciler: SchemaReconciler = Depends(get_reconciler)
):
    """Run a named reconciliation from the migration catalog"""
    try:
        migration = get_migration(data.action)
    except UnknownMigrationError:
        raise HTTPException(status_code=400, detail="Invalid action specified")

    logger.info(f"🔍 Admin migration requested: {migration.name}")
    result = reconciler.run_migration(migration, backfill=data.backfill)

    if result.success:
        return {
            "success": True,
            "message": f"Migration {migration.name} completed successfully",
            "result": result.model_dump(),
        }

    return JSONResponse(
        status_code=503 if result.channel_unavailable else 500,
        content={
            "success": False,
            "error": "Failed to execute SQL",
            "details": result.error,
            "manual_sql": render_script(result.manual_sql),
            "result": result.model_dump(),
        },
    )


@router.get("/db-migration", dependencies=[Depends(require_admin)])
async def check_column(
    table: str = Query(...),
    column: str = Query(...),
    reconciler: SchemaReconciler = Depends(get_reconciler),
):
    """Whether a column exists on a table"""
    try:
        exists = reconciler.prober.column_exists(table, column)
    except BackendError as e:
        logger.error(f"❌ Column check for {table}.{column} failed: {e.message}")
        return JSONResponse(
            status_code=503 if isinstance(e, ChannelUnavailableError) else 500,
            content={"error": "Failed to check column", "details": e.to_dict()},
        )

    return {
        "table": table,
        "column": column,
        "exists": exists,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
