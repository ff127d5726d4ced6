"""
Tool registry for wapflow.

This module provides a decorator to register site tools and a registry to look them up by name.
Site tools are coroutines that receive the site API client as their first argument followed by
keyword arguments taken verbatim from the provider's tool call.

The declarations sent to the provider are derived from the registered signatures, so a tool's
type hints and docstring *are* its published schema.  The reserved ``render`` declaration is
appended last; it has no registry entry because render calls never reach the tool executor as
site calls.
"""

import inspect
import logging
import types
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from wapflow.core.schema import (
    RENDER_TOOL_NAME,
    ToolDeclaration,
)

logger = logging.getLogger(__name__)

TOOL_REGISTRY: Dict[str, Callable] = {}
"""Global registry of site tool coroutines."""


def register_tool(name: str) -> Callable:
    """
    Register a site tool coroutine with the given name.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("listTodos")
        async def list_todos(api, status: str | None = None):
            return await api.list_todos(...)

    Parameters
    ----------
    name: str
        The name the provider uses to call the tool.  It must be unique and must not be the
        reserved render name.
    Returns
    -------
    Callable
        A decorator that registers the function with the given name.
    Raises
    ------
    ValueError
        If a function with the same name is already registered or the name is reserved.
    """
    if name == RENDER_TOOL_NAME:
        raise ValueError(f"Tool name '{name}' is reserved.")
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: Callable) -> Callable:
        TOOL_REGISTRY[name] = fn
        return fn

    return wrapper


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------
_JSON_TYPES: Dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


def _is_optional(hint: Any) -> bool:
    origin = get_origin(hint)
    return origin in (Union, types.UnionType) and type(None) in get_args(hint)


def _json_schema(hint: Any) -> Dict[str, Any]:
    """Map a type hint onto a (small) JSON Schema fragment."""
    origin = get_origin(hint)
    if origin is Annotated:
        base, *extras = get_args(hint)
        schema = _json_schema(base)
        descriptions = [extra for extra in extras if isinstance(extra, str)]
        if descriptions:
            schema["description"] = descriptions[0]
        return schema
    if origin in (Union, types.UnionType):
        members = [arg for arg in get_args(hint) if arg is not type(None)]
        if len(members) == 1:
            return _json_schema(members[0])
        return {"anyOf": [_json_schema(member) for member in members]}
    if origin is Literal:
        values = list(get_args(hint))
        return {"type": _JSON_TYPES.get(type(values[0]), "string"), "enum": values}
    if origin in (list, List):
        (item,) = get_args(hint) or (Any,)
        schema: Dict[str, Any] = {"type": "array"}
        if item is not Any:
            schema["items"] = _json_schema(item)
        return schema
    if origin in (dict, Dict):
        return {"type": "object"}
    if hint in _JSON_TYPES:
        return {"type": _JSON_TYPES[hint]}
    return {}


def tool_declaration(name: str, func: Callable) -> ToolDeclaration:
    """Build a provider-neutral declaration from a registered tool's signature."""
    sig = inspect.signature(func)
    type_hints = get_type_hints(func, include_extras=True)
    properties: Dict[str, Any] = {}
    required: List[str] = []
    # The first parameter is the injected site API client
    for param_name, param in list(sig.parameters.items())[1:]:
        hint = type_hints.get(param_name, Any)
        properties[param_name] = _json_schema(hint)
        if param.default is inspect.Parameter.empty and not _is_optional(hint):
            required.append(param_name)
    parameters: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        parameters["required"] = required
    return ToolDeclaration(
        name=name, description=inspect.getdoc(func) or "", parameters=parameters
    )


RENDER_TOOL_DECLARATION = ToolDeclaration(
    name=RENDER_TOOL_NAME,
    description=(
        "Generate a dynamic UI for displaying substep results or asking the user for a decision. "
        "You must pass both the data structure description (type definitions) and the actual "
        "data to render. When an action has continues=true the user's choice is returned as "
        "this call's result."
    ),
    parameters={
        "type": "object",
        "properties": {
            "dataStructureDescription": {
                "type": "string",
                "description": (
                    "Type definitions of `data` as a string, with inline descriptive comments for "
                    "each property, even inner properties."
                ),
            },
            "data": {
                "type": "object",
                "description": (
                    "The actual data to render. Its structure must match "
                    "dataStructureDescription."
                ),
            },
            "mainGoal": {
                "type": "string",
                "description": "The user's original natural language request",
            },
            "subGoal": {
                "type": "string",
                "description": "What this specific substep is trying to achieve",
            },
            "stepType": {
                "type": "string",
                "description": "Type of UI to generate",
                "enum": ["preview", "confirm", "progress", "result", "error"],
            },
            "actions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "label": {"type": "string"},
                        "variant": {
                            "type": "string",
                            "enum": ["primary", "danger", "secondary", "success"],
                        },
                        "continues": {"type": "boolean"},
                    },
                    "required": ["id", "label", "continues"],
                },
            },
            "taskCompleted": {
                "type": "boolean",
                "description": (
                    "If true, signals that the task is complete and the conversation should end. "
                    "Set to true for the final render call when all work is done."
                ),
            },
            "metadata": {
                "type": "object",
                "properties": {
                    "affectedCount": {"type": "integer"},
                    "operationType": {"type": "string"},
                    "isDestructive": {"type": "boolean"},
                },
            },
        },
        "required": [
            "dataStructureDescription",
            "data",
            "mainGoal",
            "subGoal",
            "stepType",
            "actions",
        ],
    },
)


def get_tool_declarations(include_render: bool = True) -> List[ToolDeclaration]:
    """Declarations of every registered site tool, followed by the render tool."""
    declarations = [tool_declaration(name, func) for name, func in TOOL_REGISTRY.items()]
    if include_render:
        declarations.append(RENDER_TOOL_DECLARATION)
    return declarations
