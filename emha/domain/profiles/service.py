"""Profile service - ensure-then-act access to ambassador profiles"""

import logging
from typing import Any, Optional, Union

from ...schema.catalog import Migration, get_migration
from ...schema.reconcile import ReconcileResult, SchemaReconciler
from .repository import RestProfileRepository, SqlProfileRepository

logger = logging.getLogger(__name__)


class ProfileNotFoundError(LookupError):
    def __init__(self, profile_id: str):
        super().__init__(f"Ambassador profile {profile_id} not found")
        self.profile_id = profile_id


class ProfileService:
    """
    Every read and write first reconciles the profile table. A failed
    reconciliation is logged and the operation still goes ahead; the store
    reports whatever is actually wrong.
    """

    def __init__(
        self,
        repo: Union[RestProfileRepository, SqlProfileRepository],
        reconciler: Optional[SchemaReconciler] = None,
        migration: Optional[Migration] = None,
    ):
        self.repo = repo
        self.reconciler = reconciler
        self.migration = migration or get_migration("ambassador_profile")

    def ensure_schema(self) -> Optional[ReconcileResult]:
        if self.reconciler is None:
            return None

        result = self.reconciler.run_migration(self.migration)
        if not result.success:
            logger.error(f"❌ Could not ensure {self.migration.table} schema: {result.error}")
        return result

    def get(self, profile_id: str) -> dict[str, Any]:
        self.ensure_schema()
        profile = self.repo.get(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    def upsert(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert or update by id; returns the stored row with server-set timestamps"""
        if not record.get("id"):
            raise ValueError("Profile record requires an id")

        self.ensure_schema()
        logger.info(f"📥 Upserting ambassador profile {record['id']} ({len(record)} fields)")
        profile = self.repo.upsert(record)
        logger.info(f"✅ Ambassador profile {record['id']} saved")
        return profile
