"""
Ambassador role repair.

Ambassadors who signed up before roles were written at registration have a
profile row but no "ambassador" role in their auth metadata, and sometimes no
row in the public users table. This walks every profile and fixes both.
"""

import logging
from typing import Any

from pydantic import BaseModel

from ...backend.client import BackendClient
from ...backend.errors import BackendError
from ...models import UserRole
from ..profiles.repository import PROFILE_TABLE

logger = logging.getLogger(__name__)

USERS_TABLE = "users"


class RoleRepairStats(BaseModel):
    total: int = 0
    updated: int = 0
    already_correct: int = 0
    errors: int = 0


class AmbassadorRoleRepair:
    def __init__(
        self,
        client: BackendClient,
        profile_table: str = PROFILE_TABLE,
        users_table: str = USERS_TABLE,
    ):
        self.client = client
        self.profile_table = profile_table
        self.users_table = users_table

    def run(self) -> RoleRepairStats:
        """Failing to list profiles raises; per-user failures are counted"""
        profiles = self.client.select(self.profile_table, columns="id,full_name,email")
        stats = RoleRepairStats(total=len(profiles))
        logger.info(f"🔍 Found {stats.total} ambassador profiles")

        for profile in profiles:
            try:
                self._repair(profile, stats)
            except BackendError as e:
                stats.errors += 1
                who = profile.get("email") or profile["id"]
                logger.error(f"❌ Could not repair role for {who}: {e.message}")

        logger.info(
            f"✅ Role repair finished: {stats.updated} updated, "
            f"{stats.already_correct} already correct, {stats.errors} errors"
        )
        return stats

    def _repair(self, profile: dict[str, Any], stats: RoleRepairStats) -> None:
        user_id = profile["id"]
        user = self.client.get_auth_user(user_id)
        metadata = user.get("user_metadata") or {}

        if metadata.get("role") == UserRole.AMBASSADOR.value:
            stats.already_correct += 1
            logger.info(f"ℹ️  {profile.get('email') or user_id} already has the ambassador role")
        else:
            self.client.update_auth_user_metadata(
                user_id, {**metadata, "role": UserRole.AMBASSADOR.value}
            )
            stats.updated += 1
            logger.info(f"✅ Set ambassador role for {profile.get('email') or user_id}")

        # The public users row is secondary; its failure does not count against the user
        try:
            self.client.upsert(
                self.users_table,
                {
                    "id": user_id,
                    "email": profile.get("email") or user.get("email"),
                    "full_name": profile.get("full_name"),
                    "role": UserRole.AMBASSADOR.value,
                },
            )
        except BackendError as e:
            logger.warning(f"⚠️  Could not upsert {self.users_table} row for {user_id}: {e.message}")
