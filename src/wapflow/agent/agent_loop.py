"""Main orchestration loop for wapflow."""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Awaitable,
    Callable,
    Optional,
)

from wapflow.agent.callbacks import EngineCallbacks
from wapflow.agent.dispatcher import (
    BatchComplete,
    CallDispatcher,
)
from wapflow.agent.prompts import (
    RENDER_SYSTEM_INSTRUCTION,
    SYSTEM_INSTRUCTION,
)
from wapflow.agent.provider_interface import (
    BaseProvider,
    load_provider,
)
from wapflow.agent.render_pipeline import RenderPipeline
from wapflow.agent.session import (
    LoopState,
    OrchestrationCancelled,
    Session,
)
from wapflow.agent.tool_executor import execute_tool
from wapflow.core.schema import (
    ConversationTurn,
    ToolCall,
    ToolResult,
    UserAction,
)
from wapflow.tools import get_tool_declarations
from wapflow.tools.todo_api import TodoApiClient

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., BaseProvider]
ToolExecutor = Callable[[ToolCall, TodoApiClient], Awaitable[ToolResult]]


class OrchestrationHandle:
    """What ``Orchestrator.execute`` returns: a way to follow and to stop one request."""

    def __init__(self, session: Session, task: asyncio.Task):
        self.session = session
        self._task = task

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def state(self) -> LoopState:
        return self.session.state

    def abort(self) -> None:
        """Cancel the orchestration; safe to call any number of times, at any point."""
        self.session.abort()

    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> LoopState:
        """Wait for the loop to terminate and return its final state."""
        await self._task
        return self.session.state


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class Orchestrator:
    """
    Drives one request at a time through the provider / dispatch / gate cycle.

    Parameters
    ----------
    api:
        Client for the site API the tools operate on.  Owned by the host, which closes it.
    callbacks:
        Host sinks for thinking, UI, responses, errors and lifecycle events.
    provider_factory:
        Builds a provider from ``system_instruction`` and ``tools`` keywords.  One instance
        carries the conversation; a second, stateless one generates render templates.
    tool_executor:
        Runs one normal call.  Must turn failures into error results rather than raise.
    """

    def __init__(
        self,
        api: TodoApiClient,
        callbacks: EngineCallbacks | None = None,
        provider_factory: ProviderFactory = load_provider,
        tool_executor: ToolExecutor = execute_tool,
    ):
        self.api = api
        self.callbacks = callbacks or EngineCallbacks()
        self._provider_factory = provider_factory
        self._tool_executor = tool_executor
        self.session: Optional[Session] = None
        self._task: Optional[asyncio.Task] = None

    def execute(self, user_input: str) -> OrchestrationHandle:
        """
        Start orchestrating *user_input* and return immediately.

        Must be called from a running event loop.  The returned handle can abort the session
        before any asynchronous work has happened.
        """
        if self._task is not None and not self._task.done():
            raise RuntimeError("An orchestration is already running")
        session = Session()
        session.conversation_tail = [ConversationTurn.user_text(user_input)]
        self.session = session
        self._task = asyncio.create_task(self._run(session))
        logger.info("Session %s started: %r", session.session_id, user_input)
        return OrchestrationHandle(session, self._task)

    def abort(self) -> None:
        """Abort the current session, if any."""
        if self.session is not None:
            self.session.abort()

    def submit_user_action(self, action: UserAction) -> bool:
        """
        Hand a UI choice to the session waiting on it.

        Returns False when nothing is waiting; the action is then dropped.
        """
        if self.session is None:
            logger.info("Ignoring user action '%s': no session", action.action_id)
            return False
        self.callbacks.user_action(action)
        return self.session.gate.submit(action)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    async def _run(self, session: Session) -> None:
        try:
            await self._loop(session)
        except Exception as exc:  # pylint: disable=broad-except
            # A request that fails after abort() ends as an abort, not an error
            if isinstance(exc, OrchestrationCancelled) or session.aborted:
                logger.info("Session %s aborted: %s", session.session_id, exc)
                session.transition(LoopState.ABORTED)
                self.callbacks.ui("")
                self.callbacks.thinking("")
                return
            logger.exception("Session %s failed", session.session_id)
            session.transition(LoopState.ERRORED)
            self.callbacks.error(exc)
        else:
            session.transition(LoopState.COMPLETED)
        self.callbacks.complete()

    async def _loop(self, session: Session) -> None:
        session.checkpoint()
        provider = self._provider_factory(
            system_instruction=SYSTEM_INSTRUCTION, tools=get_tool_declarations()
        )
        render_provider = self._provider_factory(system_instruction=RENDER_SYSTEM_INSTRUCTION)
        pipeline = RenderPipeline(render_provider)
        dispatcher = CallDispatcher(
            session, lambda call: self._tool_executor(call, self.api), pipeline, self.callbacks
        )

        while True:
            session.checkpoint()
            session.transition(LoopState.AWAITING_PROVIDER)
            turns, session.conversation_tail = session.conversation_tail, []
            response = await provider.send(turns)
            session.checkpoint()

            if response.thinking:
                self.callbacks.thinking(response.thinking)
            if not response.tool_calls:
                self.callbacks.response(response.text or "")
                return

            session.transition(LoopState.DISPATCHING)
            outcome = await dispatcher.dispatch(response.tool_calls)
            if isinstance(outcome, BatchComplete):
                logger.info("Session %s: task completed by render", session.session_id)
                return

            session.conversation_tail = [
                ConversationTurn.tool_calls(response.tool_calls),
                ConversationTurn.tool_results(outcome),
            ]
