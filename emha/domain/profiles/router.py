"""Ambassador profile router - FastAPI endpoints for profile reads and writes"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ...deps import get_profile_service
from ...shared.validators import is_uuid
from .schemas import ProfileUpsert
from .service import ProfileNotFoundError, ProfileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ambassadors", tags=["Ambassador Profiles"])


def _check_profile_id(profile_id: str) -> None:
    if not is_uuid(profile_id):
        raise HTTPException(status_code=400, detail="Invalid profile id")


@router.get("/{profile_id}/profile", response_model=dict[str, Any])
async def get_profile(profile_id: str, service: ProfileService = Depends(get_profile_service)):
    """Get an ambassador profile, reconciling the table first"""
    _check_profile_id(profile_id)
    try:
        return service.get(profile_id)
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="Ambassador profile not found")


@router.put("/{profile_id}/profile", response_model=dict[str, Any])
async def upsert_profile(
    profile_id: str,
    data: ProfileUpsert,
    service: ProfileService = Depends(get_profile_service),
):
    """Create or update an ambassador profile"""
    _check_profile_id(profile_id)

    record = data.to_record()
    if record.get("id") not in (None, profile_id):
        raise HTTPException(status_code=400, detail="Profile id does not match the URL")
    record["id"] = profile_id

    return service.upsert(record)
