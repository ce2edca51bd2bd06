import logging
from typing import Any, Optional

import httpx

from ..config import BACKEND_SERVICE_KEY, BACKEND_TIMEOUT, BACKEND_URL
from .errors import BackendError, ChannelUnavailableError

logger = logging.getLogger(__name__)


class BackendClient:
    """
    Thin client for the hosted backend's REST surface.

    - /rest/v1/<table>         row API (select / upsert), filtered by equality
    - /rest/v1/rpc/<function>  remote procedures
    - /auth/v1/admin/users     auth admin API (service key only)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = BACKEND_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not base_url or not api_key:
            raise ValueError("Backend URL and API key are required")

        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(
            base_url=self.base_url,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, url: Optional[str] = None, key: Optional[str] = None, **kwargs):
        """Client from explicit values, falling back to environment configuration"""
        return cls(url or BACKEND_URL, key or BACKEND_SERVICE_KEY, **kwargs)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"❌ Backend unreachable ({method} {path}): {e}")
            raise ChannelUnavailableError(f"Backend unreachable: {e}", code="NETWORK_ERROR") from e

        if response.status_code >= 400:
            error = BackendError.from_response(response)
            logger.error(
                f"❌ Backend error {response.status_code} on {method} {path}: "
                f"{error.message} (code={error.code})"
            )
            raise error
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Remote procedures
    # ------------------------------------------------------------------

    def rpc(self, function: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Call a remote procedure and return its decoded JSON result"""
        response = self._send("POST", f"/rest/v1/rpc/{function}", json=params or {})
        return self._json(response)

    # ------------------------------------------------------------------
    # Row API
    # ------------------------------------------------------------------

    @staticmethod
    def _eq_filters(filters: Optional[dict[str, Any]]) -> dict[str, str]:
        params = {}
        for column, value in (filters or {}).items():
            if isinstance(value, bool):
                value = str(value).lower()
            params[column] = f"eq.{value}"
        return params

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        order: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params = {"select": columns, **self._eq_filters(filters)}
        if limit is not None:
            params["limit"] = str(limit)
        if order:
            params["order"] = order
        response = self._send("GET", f"/rest/v1/{table}", params=params)
        return self._json(response) or []

    def select_one(
        self, table: str, filters: dict[str, Any], columns: str = "*"
    ) -> Optional[dict[str, Any]]:
        """Return the single matching row or None"""
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    def table_reachable(self, table: str) -> bool:
        """Direct table probe: can one row be selected through the row API?"""
        try:
            self.select(table, limit=1)
        except BackendError as e:
            logger.warning(f"⚠️  {table} not reachable through row API: {e.message}")
            return False
        return True

    def upsert(self, table: str, record: dict[str, Any], on_conflict: str = "id") -> dict[str, Any]:
        """Insert-or-update one record, returning the stored representation"""
        response = self._send(
            "POST",
            f"/rest/v1/{table}",
            params={"on_conflict": on_conflict},
            json=record,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        rows = self._json(response) or []
        if isinstance(rows, list):
            if not rows:
                raise BackendError(f"Upsert into {table} returned no row", code="EMPTY_RESULT")
            return rows[0]
        return rows

    # ------------------------------------------------------------------
    # Auth admin API
    # ------------------------------------------------------------------

    def get_auth_user(self, user_id: str) -> dict[str, Any]:
        response = self._send("GET", f"/auth/v1/admin/users/{user_id}")
        return self._json(response) or {}

    def update_auth_user_metadata(self, user_id: str, user_metadata: dict[str, Any]) -> dict[str, Any]:
        response = self._send(
            "PUT",
            f"/auth/v1/admin/users/{user_id}",
            json={"user_metadata": user_metadata},
        )
        return self._json(response) or {}
