"""Tests for the site API client and the site tools built on it."""

import json

import httpx
import pytest

from wapflow.tools.todo_api import (
    TodoApiClient,
    TodoApiError,
)
from wapflow.tools.todo_tools import (
    list_todos,
    update_todo,
)


class Recorder:
    """``httpx.MockTransport`` handler answering from a fixed table."""

    def __init__(self, status: int = 200, body=None):
        self.status = status
        self.body = body
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status == 204:
            return httpx.Response(204)
        return httpx.Response(self.status, json=self.body)


def _client(handler) -> TodoApiClient:
    transport = httpx.MockTransport(handler)
    return TodoApiClient(base_url="http://todo.test/api/v1", transport=transport)


async def test_list_todos_sends_query() -> None:
    handler = Recorder(body=[{"id": "1"}])
    async with _client(handler) as api:
        todos = await api.list_todos({"priority": "urgent"})

    assert todos == [{"id": "1"}]
    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/api/v1/todos"
    assert request.url.params["priority"] == "urgent"


async def test_bulk_delete_posts_ids() -> None:
    handler = Recorder(body={"deleted": 2})
    async with _client(handler) as api:
        assert await api.bulk_delete(["1", "2"]) == {"deleted": 2}

    request = handler.requests[0]
    assert (request.method, request.url.path) == ("POST", "/api/v1/todos/bulk-delete")
    assert json.loads(request.content) == {"ids": ["1", "2"]}


async def test_no_content_yields_none() -> None:
    async with _client(Recorder(status=204)) as api:
        assert await api.delete_todo("1") is None


async def test_error_body_message_is_used() -> None:
    body = {"error": {"code": "NOT_FOUND", "message": "Todo not found"}}
    handler = Recorder(status=404, body=body)
    async with _client(handler) as api:
        with pytest.raises(TodoApiError) as excinfo:
            await api.get_todo_by_id("missing")

    assert str(excinfo.value) == "Todo not found"
    assert excinfo.value.status_code == 404


async def test_error_without_body_uses_status_line() -> None:
    async with _client(Recorder(status=500, body=None)) as api:
        with pytest.raises(TodoApiError, match="HTTP 500"):
            await api.list_todos()


async def test_transport_failure() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(refuse) as api:
        with pytest.raises(TodoApiError, match="connection refused"):
            await api.list_todos()


async def test_list_tool_forwards_only_set_filters() -> None:
    handler = Recorder(body=[])
    async with _client(handler) as api:
        await list_todos(api, status="due", priority=None, title="")

    assert dict(handler.requests[0].url.params) == {"status": "due"}


async def test_update_tool_sends_present_fields_only() -> None:
    handler = Recorder(body={"id": "1"})
    async with _client(handler) as api:
        await update_todo(api, id="1", description=None, priority="high")

    request = handler.requests[0]
    assert (request.method, request.url.path) == ("PATCH", "/api/v1/todos/1")
    assert json.loads(request.content) == {"description": None, "priority": "high"}
