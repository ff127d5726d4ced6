"""Dispatches site tool calls registered in ``wapflow.tools`` and wraps errors as results."""

import logging

from pydantic import ValidationError

from wapflow.core.schema import (
    RenderArgs,
    ToolCall,
    ToolResult,
)
from wapflow.tools import TOOL_REGISTRY
from wapflow.tools import todo_tools  # pylint: disable=unused-import  # registers the site tools
from wapflow.tools.todo_api import TodoApiClient

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised inside the executor when a requested tool cannot run; never escapes it."""


async def execute_tool(call: ToolCall, api: TodoApiClient) -> ToolResult:
    """
    Look up ``call.name`` in the registry and invoke it with ``call.arguments``.

    Parameters
    ----------
    call:
        The tool call as emitted by the provider.
    api:
        Site API client handed to the tool as its first argument.

    Returns
    -------
    ToolResult
        The tool's return value, or ``{"error": message}`` if the tool is unknown, its arguments
        do not fit, or the site API fails.  This coroutine never raises for tool failures; retry
        policy belongs to the model, informed by the error text.
    """
    try:
        result = await _invoke(call, api)
    except ToolExecutionError as exc:
        logger.warning("Tool '%s' failed: %s", call.name, exc)
        return ToolResult.error(call, str(exc))
    return ToolResult(name=call.name, result=result, id=call.id)


async def _invoke(call: ToolCall, api: TodoApiClient) -> object:
    if call.is_render:
        # Only malformed render calls are routed here
        try:
            RenderArgs.model_validate(call.arguments)
        except ValidationError as exc:
            raise ToolExecutionError(f"Invalid render arguments: {exc}") from exc
        raise ToolExecutionError("Render calls are not executed as site calls")

    tool_fn = TOOL_REGISTRY.get(call.name)
    if tool_fn is None:
        raise ToolExecutionError(f"Unknown tool: {call.name}")

    try:
        logger.debug("Executing tool '%s' with args=%s", call.name, call.arguments)
        return await tool_fn(api, **call.arguments)
    except TypeError as exc:
        # Argument mismatch: give the model a clean message
        logger.debug("Argument error while executing tool '%s'", call.name, exc_info=True)
        raise ToolExecutionError(f"Invalid arguments for tool '{call.name}': {exc}") from exc
    except Exception as exc:  # pylint: disable=broad-except
        raise ToolExecutionError(str(exc) or exc.__class__.__name__) from exc
