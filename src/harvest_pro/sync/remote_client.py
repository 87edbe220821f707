"""REST client for the hosted remote data service (PostgREST dialect).

Every write the sync processor makes goes through :meth:`RemoteClient.upsert`
or :meth:`RemoteClient.update`. Upserts are keyed on the queue entry id, so
repeating a write that already landed server-side leaves exactly one row.
"""

import logging
from typing import Optional

import httpx

from harvest_pro.config import Config
from harvest_pro.errors import RemoteError, RemoteNetworkError

logger = logging.getLogger(__name__)


def _eq_filters(filters: dict) -> dict:
    return {column: f"eq.{value}" for column, value in filters.items()}


class RemoteClient:
    """Thin PostgREST client over an ``httpx.Client``."""

    def __init__(self, base_url: Optional[str] = None,
                 api_key: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or Config.REMOTE_BASE_URL).rstrip("/")
        api_key = api_key if api_key is not None else Config.REMOTE_API_KEY
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(
                timeout if timeout is not None else Config.REMOTE_TIMEOUT,
                connect=10.0,
            ),
            transport=transport,
        )

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── Requests ────────────────────────────────────────────────

    def _request(self, method: str, path: str, *, params: dict = None,
                 json_data=None, prefer: str = "") -> list[dict]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._client.request(
                method, f"/{path}", params=params, json=json_data,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise RemoteNetworkError(f"Network timeout: {e}") from e
        except httpx.TransportError as e:
            raise RemoteNetworkError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    @staticmethod
    def _error_from_response(response: httpx.Response) -> RemoteError:
        code = ""
        message = f"HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = str(body.get("code") or "")
            detail = body.get("message") or body.get("error") or ""
            if detail:
                message = f"{message}: {detail}"
        elif response.text:
            message = f"{message}: {response.text[:200]}"
        return RemoteError(message, code=code, status=response.status_code)

    def upsert(self, table: str, row: dict,
               on_conflict: str = "id") -> list[dict]:
        """Insert ``row`` or merge it into the existing row with the same key."""
        return self._request(
            "POST", table,
            params={"on_conflict": on_conflict},
            json_data=row,
            prefer="resolution=merge-duplicates,return=representation",
        )

    def insert(self, table: str, row: dict) -> list[dict]:
        return self._request(
            "POST", table, json_data=row, prefer="return=representation",
        )

    def update(self, table: str, values: dict, filters: dict) -> list[dict]:
        """Apply ``values`` to rows matching every filter.

        Returns the updated rows; an empty list means nothing matched.
        """
        if not filters:
            raise ValueError("Refusing to update without a filter")
        return self._request(
            "PATCH", table,
            params=_eq_filters(filters),
            json_data=values,
            prefer="return=representation",
        )

    def select(self, table: str, filters: Optional[dict] = None
               ) -> list[dict]:
        params = {"select": "*"}
        params.update(_eq_filters(filters or {}))
        return self._request("GET", table, params=params)

    def is_reachable(self) -> bool:
        """Check if the remote service answers at all."""
        try:
            self._client.request("HEAD", "/")
            return True
        except httpx.HTTPError:
            return False
