"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

from wapflow.agent.tool_executor import execute_tool
from wapflow.core.schema import ToolCall
from wapflow.tools import register_tool
from wapflow.tools.todo_api import TodoApiError


# These are stub tools for testing purposes.
@register_tool("testAdd")
async def _add(api, a: int, b: int) -> int:
    """Return the sum of two integers (used only for tests)."""

    return a + b


@register_tool("testSiteFailure")
async def _fail(api) -> None:
    """Fail the way the site API client does (used only for tests)."""

    raise TodoApiError("Todo not found", status_code=404)


async def test_execute_tool_success() -> None:
    """Executor should return the tool's value paired with the call."""

    call = ToolCall(name="testAdd", arguments={"a": 2, "b": 3}, id="c1")
    result = await execute_tool(call, None)
    assert result.result == 5
    assert result.id == "c1"
    assert not result.is_error


async def test_execute_tool_missing() -> None:
    """An unknown tool becomes an error result instead of an exception."""

    result = await execute_tool(ToolCall(name="not_a_tool"), None)
    assert result.is_error
    assert result.result == {"error": "Unknown tool: not_a_tool"}


async def test_execute_tool_bad_args() -> None:
    """Wrong arguments become an error result naming the tool."""

    call = ToolCall(name="testAdd", arguments={"a": 2})  # missing 'b'
    result = await execute_tool(call, None)
    assert result.is_error
    assert "Invalid arguments" in result.result["error"]


async def test_execute_tool_site_error() -> None:
    """Site API failures are reported with the service's message."""

    result = await execute_tool(ToolCall(name="testSiteFailure"), None)
    assert result.result == {"error": "Todo not found"}


async def test_malformed_render_call() -> None:
    """A render call that reached the executor reports why its arguments are invalid."""

    result = await execute_tool(ToolCall(name="render", arguments={"data": []}), None)
    assert result.result["error"].startswith("Invalid render arguments:")
