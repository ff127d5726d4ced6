"""
End-to-end tests of the orchestration loop with scripted providers and tools.

Run with:
$ pytest -q tests/test_agent_loop.py
"""

import pytest
from fakes import (
    CONFIRM_TEMPLATE,
    RESULT_TEMPLATE,
    FakeTools,
    ProviderPair,
    calls,
    render_call,
    text,
    wait_until,
)

from wapflow.agent.agent_loop import Orchestrator
from wapflow.agent.callbacks import EngineCallbacks
from wapflow.agent.session import LoopState
from wapflow.core.schema import (
    ToolCall,
    ToolCallPart,
    ToolResult,
    ToolResultPart,
    UserAction,
)


class Recorder:
    """Collects every callback the engine fires."""

    def __init__(self, retry=None):
        self.events = []
        self.callbacks = EngineCallbacks(
            on_thinking=lambda value: self.events.append(("thinking", value)),
            on_ui=lambda value: self.events.append(("ui", value)),
            on_response=lambda value: self.events.append(("response", value)),
            on_error=lambda exc: self.events.append(("error", exc)),
            on_user_action=lambda action: self.events.append(("user_action", action.action_id)),
            on_render_retry=retry,
            on_complete=lambda: self.events.append(("complete", None)),
        )

    def of(self, kind):
        return [value for event, value in self.events if event == kind]


def _orchestrator(providers, tools=None, retry=None):
    recorder = Recorder(retry)
    orchestrator = Orchestrator(
        api=object(),
        callbacks=recorder.callbacks,
        provider_factory=providers,
        tool_executor=tools or FakeTools(),
    )
    return orchestrator, recorder


async def test_readonly_request_answers_with_text() -> None:
    """A list request runs one site call and ends on the model's text."""
    providers = ProviderPair(
        [
            calls(ToolCall(name="listTodos", arguments={"priority": "urgent"})),
            text("You have one urgent todo.", thinking="Listing urgent todos"),
        ]
    )
    tools = FakeTools(results={"listTodos": [{"id": "1", "priority": "urgent"}]})
    orchestrator, recorder = _orchestrator(providers, tools)

    state = await orchestrator.execute("List my urgent todos").wait()

    assert state is LoopState.COMPLETED
    assert recorder.of("response") == ["You have one urgent todo."]
    assert recorder.of("complete") == [None]
    assert recorder.of("thinking") == ["Listing urgent todos"]
    assert recorder.of("ui") == []
    assert providers.render.requests == []
    assert [call.arguments for call in tools.calls] == [{"priority": "urgent"}]

    # Second request carries the paired call and result turns
    calls_turn, results_turn = providers.main.requests[1][-2:]
    assert calls_turn.role == "model" and isinstance(calls_turn.parts[0], ToolCallPart)
    assert results_turn.role == "user" and isinstance(results_turn.parts[0], ToolResultPart)
    assert results_turn.parts[0].result.result == [{"id": "1", "priority": "urgent"}]


async def test_paired_turns_keep_call_order() -> None:
    providers = ProviderPair(
        [calls(ToolCall(name="slow"), ToolCall(name="fast")), text("done")]
    )
    tools = FakeTools(delays={"slow": 0.05})
    orchestrator, _ = _orchestrator(providers, tools)

    await orchestrator.execute("go").wait()

    calls_turn, results_turn = providers.main.requests[1][-2:]
    assert [part.call.name for part in calls_turn.parts] == ["slow", "fast"]
    assert [part.result.name for part in results_turn.parts] == ["slow", "fast"]


async def test_confirmation_resumes_with_user_choice() -> None:
    """Delete flow: preview, wait for the user, then continue with the choice."""
    providers = ProviderPair(
        [
            calls(ToolCall(name="listTodos", arguments={"status": "complete"}), render_call()),
            calls(ToolCall(name="bulkDelete", arguments={"ids": ["1", "2"]})),
            text("Deleted 2 todos."),
        ],
        [text(CONFIRM_TEMPLATE)],
    )
    tools = FakeTools()
    orchestrator, recorder = _orchestrator(providers, tools)

    handle = orchestrator.execute("Delete all completed todos")
    await wait_until(lambda: handle.session.gate.pending)
    assert handle.state is LoopState.AWAITING_USER_ACTION
    assert len(providers.main.requests) == 1

    assert orchestrator.submit_user_action(UserAction(actionId="confirm"))
    state = await handle.wait()

    assert state is LoopState.COMPLETED
    assert [call.name for call in tools.calls] == ["listTodos", "bulkDelete"]
    results_turn = providers.main.requests[1][-1]
    assert results_turn.parts[1].result.result == {"type": "userAction", "actionId": "confirm"}
    assert recorder.of("user_action") == ["confirm"]
    assert recorder.of("complete") == [None]


async def test_completion_render_ends_without_another_request() -> None:
    providers = ProviderPair(
        [calls(render_call(step_type="result", continues=True, task_completed=True))],
        [text(RESULT_TEMPLATE)],
    )
    orchestrator, recorder = _orchestrator(providers)

    state = await orchestrator.execute("Mark everything done").wait()

    assert state is LoopState.COMPLETED
    assert len(providers.main.requests) == 1
    assert recorder.of("ui") == ["<p>Done: Delete 2 todos</p>"]
    assert recorder.of("complete") == [None]
    assert recorder.of("response") == []


async def test_abort_while_completed_batch_settles() -> None:
    providers = ProviderPair(
        [
            calls(
                ToolCall(name="listTodos"),
                render_call(step_type="result", continues=False, task_completed=True),
            )
        ],
        [text(RESULT_TEMPLATE)],
    )
    orchestrator, recorder = _orchestrator(providers, FakeTools(delays={"listTodos": 0.3}))

    handle = orchestrator.execute("Mark everything done")
    await wait_until(lambda: recorder.of("ui"))
    handle.abort()
    state = await handle.wait()

    assert state is LoopState.ABORTED
    assert recorder.of("complete") == []
    assert recorder.events[-2:] == [("ui", ""), ("thinking", "")]


async def test_abort_during_confirmation() -> None:
    providers = ProviderPair([calls(render_call())], [text(CONFIRM_TEMPLATE)])
    orchestrator, recorder = _orchestrator(providers)

    handle = orchestrator.execute("Delete all completed todos")
    await wait_until(lambda: handle.session.gate.pending)
    handle.abort()
    handle.abort()
    state = await handle.wait()

    assert state is LoopState.ABORTED
    assert recorder.of("error") == []
    assert recorder.of("complete") == []
    assert recorder.events[-2:] == [("ui", ""), ("thinking", "")]
    assert len(providers.main.requests) == 1
    assert orchestrator.submit_user_action(UserAction(actionId="confirm")) is False


async def test_abort_before_any_work() -> None:
    providers = ProviderPair([text("never")])
    orchestrator, recorder = _orchestrator(providers)

    handle = orchestrator.execute("anything")
    handle.abort()
    state = await handle.wait()

    assert state is LoopState.ABORTED
    assert providers.main.requests == []
    assert recorder.of("complete") == []


async def test_provider_failure_is_reported_once() -> None:
    providers = ProviderPair([ConnectionError("unreachable")])
    orchestrator, recorder = _orchestrator(providers)

    state = await orchestrator.execute("List my todos").wait()

    assert state is LoopState.ERRORED
    assert len(recorder.of("error")) == 1
    assert "unreachable" in str(recorder.of("error")[0])
    assert recorder.of("complete") == [None]


async def test_tool_errors_are_fed_back_to_the_model() -> None:
    async def failing(call, api):
        return ToolResult.error(call, "Todo not found")

    lookup = ToolCall(name="getTodoById", arguments={"id": "x"})
    providers = ProviderPair([calls(lookup), text("ok")])
    orchestrator, recorder = _orchestrator(providers, failing)

    state = await orchestrator.execute("Show todo x").wait()

    assert state is LoopState.COMPLETED
    assert recorder.of("error") == []
    result = providers.main.requests[1][-1].parts[0].result
    assert result.result == {"error": "Todo not found"}


async def test_declined_render_retry_aborts() -> None:
    providers = ProviderPair([calls(render_call())], [text("")])
    orchestrator, recorder = _orchestrator(providers, retry=lambda exc: False)

    state = await orchestrator.execute("Delete all completed todos").wait()

    assert state is LoopState.ABORTED
    assert recorder.of("error") == []
    assert recorder.of("complete") == []


async def test_render_retry_accepted_continues() -> None:
    providers = ProviderPair(
        [calls(render_call(step_type="result", continues=False)), text("All set.")],
        [text(""), text(RESULT_TEMPLATE)],
    )
    orchestrator, recorder = _orchestrator(providers, retry=lambda exc: True)

    state = await orchestrator.execute("Summarize").wait()

    assert state is LoopState.COMPLETED
    assert recorder.of("response") == ["All set."]
    assert len(providers.render.requests) == 2


async def test_one_request_at_a_time() -> None:
    providers = ProviderPair([calls(render_call())], [text(CONFIRM_TEMPLATE)])
    orchestrator, _ = _orchestrator(providers)

    handle = orchestrator.execute("first")
    with pytest.raises(RuntimeError):
        orchestrator.execute("second")
    handle.abort()
    await handle.wait()
    assert handle.done()
