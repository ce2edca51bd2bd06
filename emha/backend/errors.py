"""Backend error types shared by the REST client, SQL channels and repositories"""

from typing import Any, Optional

import httpx

# PostgREST / Postgres codes meaning the SQL execution channel itself is unusable
UNAVAILABLE_CODES = {
    "PGRST202",  # function not found in schema cache
    "42883",  # undefined_function
    "42501",  # insufficient_privilege
}


class BackendError(Exception):
    """A backend call failed. Carries the message/code/details/hint payload."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "hint": self.hint,
        }

    @classmethod
    def from_response(cls, response: httpx.Response) -> "BackendError":
        """Build the most specific error for a failed row API / RPC response"""
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("error") or response.text
            code = payload.get("code")
            details = payload.get("details") or payload.get("detail")
            hint = payload.get("hint")
        else:
            message = response.text or f"HTTP {response.status_code}"
            code = details = hint = None

        error_cls = cls
        if code in UNAVAILABLE_CODES or response.status_code in (401, 403):
            error_cls = ChannelUnavailableError
        return error_cls(
            str(message),
            code=str(code) if code is not None else None,
            details=str(details) if details is not None else None,
            hint=hint,
            status_code=response.status_code,
        )


class ChannelUnavailableError(BackendError):
    """The SQL execution channel is missing, unreachable or lacks privilege"""


class SqlExecutionError(BackendError):
    """A statement reached the database and failed"""
