"""Scripted stand-ins for providers and site tools, shared by the test modules."""

import asyncio
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
)

from wapflow.agent.prompts import RENDER_SYSTEM_INSTRUCTION
from wapflow.agent.provider_interface import BaseProvider
from wapflow.core.schema import (
    ConversationTurn,
    ProviderResponse,
    ToolCall,
    ToolResult,
)

CONFIRM_TEMPLATE = """\
{% macro render(data, onAction) %}
<div>
  <h2>{{ data["title"] }}</h2>
  <button {{ onAction({"actionId": "confirm"}) }}>Confirm</button>
  <button {{ onAction("cancel") }}>Cancel</button>
</div>
{% endmacro %}"""

RESULT_TEMPLATE = """\
{% macro render(data, onAction) %}<p>Done: {{ data["title"] }}</p>{% endmacro %}"""


class ScriptedProvider(BaseProvider):
    """Returns queued responses in order; queued exceptions are raised instead."""

    def __init__(self, responses: Sequence[Any], system_instruction: str = "test", tools=None):
        super().__init__(system_instruction, tools, temperature=0.0)
        self.responses: List[Any] = list(responses)
        self.requests: List[List[ConversationTurn]] = []

    async def _generate(self, conversation: List[ConversationTurn]) -> ProviderResponse:
        self.requests.append(list(conversation))
        if not self.responses:
            raise AssertionError("Provider called more often than scripted")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class ProviderPair:
    """Provider factory handing out one conversation provider and one render provider."""

    def __init__(self, main: Sequence[Any], render: Sequence[Any] = ()):
        self.main = ScriptedProvider(main)
        self.render = ScriptedProvider(render)

    def __call__(self, system_instruction: str, tools=None) -> ScriptedProvider:
        if system_instruction == RENDER_SYSTEM_INSTRUCTION:
            return self.render
        self.main.system_instruction = system_instruction
        self.main.tools = list(tools or [])
        return self.main


class FakeTools:
    """Tool executor recording each call; per-tool delays shuffle completion order."""

    def __init__(
        self,
        results: Optional[Dict[str, Any]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.results = results or {}
        self.delays = delays or {}
        self.calls: List[ToolCall] = []
        self.finished: List[str] = []

    async def __call__(self, call: ToolCall, api: Any = None) -> ToolResult:
        self.calls.append(call)
        await asyncio.sleep(self.delays.get(call.name, 0))
        self.finished.append(call.name)
        result = self.results.get(call.name, {"ok": call.name})
        return ToolResult(name=call.name, id=call.id, result=result)


def text(value: str, thinking: Optional[str] = None) -> ProviderResponse:
    return ProviderResponse(text=value, thinking=thinking)


def calls(*tool_calls: ToolCall) -> ProviderResponse:
    return ProviderResponse(tool_calls=list(tool_calls))


def render_call(
    step_type: str = "confirm",
    continues: bool = True,
    task_completed: bool = False,
    title: str = "Delete 2 todos",
) -> ToolCall:
    arguments: Dict[str, Any] = {
        "dataStructureDescription": "{ title: string }",
        "data": {"title": title},
        "mainGoal": "Clean up finished todos",
        "subGoal": title,
        "stepType": step_type,
        "actions": [
            {"id": "confirm", "label": "Confirm", "variant": "primary", "continues": continues},
            {"id": "cancel", "label": "Cancel", "continues": False},
        ],
    }
    if task_completed:
        arguments["taskCompleted"] = True
    return ToolCall(name="render", arguments=arguments)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.005)
