"""Ambassador profile schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import is_uuid, normalize_email


class ProfileUpsert(BaseModel):
    """
    Body of a profile write. Unknown keys are passed through to the store so
    clients can write columns added after this model was written.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    bio: Optional[str] = None
    specialty: Optional[str] = None
    location: Optional[str] = None
    availability_status: Optional[str] = None
    avatar_url: Optional[str] = None
    credentials: Optional[str] = None
    gender: Optional[str] = None
    specialties: Optional[list[str]] = None
    languages: Optional[list[str]] = None
    services: Optional[list[str]] = None
    gallery_images: Optional[list[str]] = None
    awards: Optional[list[Any]] = None
    education: Optional[list[Any]] = None
    experience: Optional[list[Any]] = None
    therapy_types: Optional[list[Any]] = Field(None, alias="therapyTypes")
    consultation_fee: Optional[float] = None
    is_free: Optional[bool] = Field(None, alias="isFree")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        if v is not None and not is_uuid(v):
            raise ValueError("id must be a UUID")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return normalize_email(v)

    @field_validator("consultation_fee")
    @classmethod
    def validate_fee(cls, v):
        if v is not None and v < 0:
            raise ValueError("consultation_fee must not be negative")
        return v

    def to_record(self) -> dict[str, Any]:
        """Only the fields the client sent, keyed by column name"""
        return self.model_dump(by_alias=True, exclude_unset=True)
