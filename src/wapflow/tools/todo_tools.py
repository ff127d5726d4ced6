"""Site tools for the todo service, registered under the names the provider sees."""

from __future__ import annotations

from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
)

from wapflow.tools import register_tool
from wapflow.tools.todo_api import TodoApiClient

Priority = Literal["low", "medium", "high", "urgent"]
StoredStatus = Literal["initial", "complete"]
FilterStatus = Literal["initial", "complete", "due"]

_UNSET: Any = object()
"""Default marking an argument the provider did not send (``None`` clears a field)."""


def _present(**fields: Any) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not _UNSET}


@register_tool("createTodo")
async def create_todo(
    api: TodoApiClient,
    title: Annotated[str, "Todo title, 1-100 characters"],
    description: Annotated[str, "Optional details, max 1000 characters"] = _UNSET,
    dueDate: Annotated[str, "Due date as YYYY-MM-DD, not in the past"] = _UNSET,
    priority: Priority = _UNSET,
) -> Any:
    """Create a new todo. @tags: ["mutating", "create"]"""
    body = _present(title=title, description=description, dueDate=dueDate, priority=priority)
    return await api.create_todo(body)


@register_tool("listTodos")
async def list_todos(
    api: TodoApiClient,
    status: FilterStatus | None = None,
    priority: Priority | None = None,
    dueDateBefore: Annotated[str | None, "Only todos due before YYYY-MM-DD"] = None,
    dueDateAfter: Annotated[str | None, "Only todos due after YYYY-MM-DD"] = None,
    title: Annotated[str | None, "Substring match on the title"] = None,
    description: Annotated[str | None, "Substring match on the description"] = None,
) -> Any:
    """List todos with optional filters. @tags: ["readonly", "list", "filterable"]"""
    filters = {
        "status": status,
        "priority": priority,
        "dueDateBefore": dueDateBefore,
        "dueDateAfter": dueDateAfter,
        "title": title,
        "description": description,
    }
    query = {key: str(value) for key, value in filters.items() if value}
    return await api.list_todos(query or None)


@register_tool("getTodoById")
async def get_todo_by_id(api: TodoApiClient, id: Annotated[str, "Todo UUID"]) -> Any:
    """Fetch a single todo by id. @tags: ["readonly", "read"]"""
    return await api.get_todo_by_id(id)


@register_tool("updateTodo")
async def update_todo(
    api: TodoApiClient,
    id: Annotated[str, "Todo UUID"],
    title: str = _UNSET,
    description: Annotated[str | None, "New description, or null to clear"] = _UNSET,
    dueDate: Annotated[str | None, "New due date YYYY-MM-DD, or null to clear"] = _UNSET,
    priority: Priority = _UNSET,
    status: StoredStatus = _UNSET,
) -> Any:
    """Partially update a todo; only the given fields change. @tags: ["mutating", "patch"]"""
    body = _present(
        title=title, description=description, dueDate=dueDate, priority=priority, status=status
    )
    return await api.update_todo(id, body)


@register_tool("deleteTodo")
async def delete_todo(api: TodoApiClient, id: Annotated[str, "Todo UUID"]) -> Any:
    """Delete a todo permanently. @tags: ["mutating", "delete"]"""
    return await api.delete_todo(id)


@register_tool("bulkUpdateStatus")
async def bulk_update_status(
    api: TodoApiClient,
    ids: Annotated[List[str], "Todo UUIDs to update"],
    status: StoredStatus,
) -> Any:
    """Set the status of several todos at once. @tags: ["mutating", "batch", "update"]"""
    return await api.bulk_update_status(ids, status)


@register_tool("bulkDelete")
async def bulk_delete(
    api: TodoApiClient, ids: Annotated[List[str], "Todo UUIDs to delete"]
) -> Any:
    """Delete several todos permanently. @tags: ["mutating", "batch", "delete"]"""
    return await api.bulk_delete(ids)
