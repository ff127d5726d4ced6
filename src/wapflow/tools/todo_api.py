"""
Async client for the todo site API.

Thin wrapper over ``httpx.AsyncClient``: one coroutine per site operation, path/query/body
assembled here, error bodies turned into :class:`TodoApiError`.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
)

import httpx

from wapflow.config import settings

logger = logging.getLogger(__name__)


class TodoApiError(RuntimeError):
    """Raised when the site API rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    """Prefer the service's ``{"error": {"message": ...}}`` body over the status line."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return f"HTTP {response.status_code}: {response.reason_phrase}"


class TodoApiClient:
    """Client for the todo CRUD service (``POST/GET/PATCH/DELETE todos...``)."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        base = base_url or settings.TODO_API_BASE_URL
        if not base.endswith("/"):
            base += "/"
        self._client = httpx.AsyncClient(
            base_url=base,
            timeout=timeout if timeout is not None else settings.TODO_API_TIMEOUT,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "TodoApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the underlying connection pool."""
        await self._client.aclose()

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> Any:
        logger.debug("%s %s query=%s body=%s", method, path, query, body)
        try:
            response = await self._client.request(
                method,
                path,
                params=dict(query) if query else None,
                json=body if method in ("POST", "PATCH") else None,
            )
        except httpx.HTTPError as exc:
            raise TodoApiError(f"Error connecting to site API: {exc}") from exc

        if response.status_code == 204:
            return None
        if response.is_error:
            raise TodoApiError(_error_message(response), status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise TodoApiError(f"Invalid JSON from site API: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #
    async def create_todo(self, body: Dict[str, Any]) -> Any:
        """POST todos"""
        return await self._request("POST", "todos", body=body)

    async def list_todos(self, query: Mapping[str, str] | None = None) -> Any:
        """GET todos"""
        return await self._request("GET", "todos", query=query)

    async def get_todo_by_id(self, todo_id: str) -> Any:
        """GET todos/{id}"""
        return await self._request("GET", f"todos/{todo_id}")

    async def update_todo(self, todo_id: str, body: Dict[str, Any]) -> Any:
        """PATCH todos/{id}"""
        return await self._request("PATCH", f"todos/{todo_id}", body=body)

    async def delete_todo(self, todo_id: str) -> Any:
        """DELETE todos/{id}"""
        return await self._request("DELETE", f"todos/{todo_id}")

    async def bulk_update_status(self, ids: List[str], status: str) -> Any:
        """POST todos/bulk-update-status"""
        return await self._request(
            "POST", "todos/bulk-update-status", body={"ids": ids, "status": status}
        )

    async def bulk_delete(self, ids: List[str]) -> Any:
        """POST todos/bulk-delete"""
        return await self._request("POST", "todos/bulk-delete", body={"ids": ids})
