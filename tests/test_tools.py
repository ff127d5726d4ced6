"""Tests for the tool registry and the declarations published to providers."""

import pytest

from wapflow.agent.prompts import build_render_prompt
from wapflow.core.schema import RenderArgs
from wapflow.tools import (
    RENDER_TOOL_DECLARATION,
    TOOL_REGISTRY,
    get_tool_declarations,
    register_tool,
    todo_tools,  # pylint: disable=unused-import
)

SITE_TOOLS = {
    "createTodo",
    "listTodos",
    "getTodoById",
    "updateTodo",
    "deleteTodo",
    "bulkUpdateStatus",
    "bulkDelete",
}


def _declarations():
    return {declaration.name: declaration for declaration in get_tool_declarations()}


def test_site_tools_are_registered() -> None:
    assert SITE_TOOLS <= set(TOOL_REGISTRY)


def test_render_declared_last() -> None:
    declarations = get_tool_declarations()
    assert declarations[-1] is RENDER_TOOL_DECLARATION
    assert "render" not in {d.name for d in get_tool_declarations(include_render=False)}


def test_reserved_and_duplicate_names_rejected() -> None:
    with pytest.raises(ValueError):
        register_tool("render")
    with pytest.raises(ValueError):
        register_tool("listTodos")


def test_declaration_schema_from_signature() -> None:
    create = _declarations()["createTodo"].parameters
    assert create["required"] == ["title"]
    assert create["properties"]["title"] == {
        "type": "string",
        "description": "Todo title, 1-100 characters",
    }
    assert create["properties"]["priority"]["enum"] == ["low", "medium", "high", "urgent"]
    assert "api" not in create["properties"]

    bulk = _declarations()["bulkUpdateStatus"].parameters
    assert bulk["required"] == ["ids", "status"]
    assert bulk["properties"]["ids"]["type"] == "array"
    assert bulk["properties"]["ids"]["items"] == {"type": "string"}


def test_optional_filters_are_not_required() -> None:
    listing = _declarations()["listTodos"]
    assert "required" not in listing.parameters
    assert listing.parameters["properties"]["status"]["enum"] == ["initial", "complete", "due"]
    assert '@tags: ["readonly"' in listing.description


def test_render_prompt_is_deterministic() -> None:
    args = RenderArgs.model_validate(
        {
            "dataStructure": "{ items: Todo[] }",
            "data": {"items": [{"title": "Buy milk"}]},
            "mainGoal": "Delete completed todos",
            "subGoal": "Confirm deletion",
            "stepType": "confirm",
            "actions": [{"id": "confirm", "label": "Delete", "continues": True}],
            "taskCompleted": True,
        }
    )

    prompt = build_render_prompt(args)

    assert prompt == build_render_prompt(args)
    assert "Main Goal: Delete completed todos" in prompt
    assert "Task Completed: true" in prompt
    assert '"title": "Buy milk"' in prompt
    assert "{% macro render(data, onAction) %}" in prompt
    assert not args.requires_user_action
