"""Shared validation utilities"""

import re
import uuid
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")


def is_uuid(value) -> bool:
    """
    True only for the canonical 8-4-4-4-12 hex form (any case). Braced,
    URN and undashed spellings are rejected so ids match the stored text.
    """
    if not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercased, trimmed address; None for a blank value. Raises ValueError when malformed."""
    if email is None or not email.strip():
        return None
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    return email
