"""
Call dispatch for one model turn.

Normal calls start together and run concurrently; render calls run strictly one after another in
their original relative order, since each may suspend on the confirmation gate.  Results come
back in the order of the calls the model issued, whatever order they finished in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Sequence,
    Tuple,
)

from pydantic import ValidationError

from wapflow.agent.callbacks import EngineCallbacks
from wapflow.agent.provider_interface import ProviderError
from wapflow.agent.render_pipeline import (
    ActionBinder,
    RenderCancelledError,
    RenderGenerationError,
    RenderPipeline,
)
from wapflow.agent.session import (
    LoopState,
    OrchestrationCancelled,
    Session,
)
from wapflow.core.schema import (
    RenderArgs,
    ToolCall,
    ToolResult,
)

logger = logging.getLogger(__name__)

ToolRunner = Callable[[ToolCall], Awaitable[ToolResult]]
NormalEntry = Tuple[int, ToolCall]
RenderEntry = Tuple[int, ToolCall, RenderArgs]


class BatchComplete:
    """Returned instead of a result list when a render call marked the task completed."""

    def __init__(self, results: Dict[int, ToolResult]):
        self.results = results


def classify_calls(calls: Sequence[ToolCall]) -> Tuple[List[NormalEntry], List[RenderEntry]]:
    """
    Split *calls* into normal and render entries, keeping each call's index.

    A call named ``render`` whose arguments do not validate is treated as a normal call; the
    executor then answers it with an error result the model can read.
    """
    normal: List[NormalEntry] = []
    render: List[RenderEntry] = []
    for index, call in enumerate(calls):
        if call.is_render:
            try:
                render.append((index, call, RenderArgs.model_validate(call.arguments)))
                continue
            except ValidationError as exc:
                logger.warning("Malformed render call %s: %s", call.id or index, exc)
        normal.append((index, call))
    return normal, render


class CallDispatcher:
    """Runs one batch of tool calls against a session."""

    def __init__(
        self,
        session: Session,
        run_tool: ToolRunner,
        pipeline: RenderPipeline,
        callbacks: EngineCallbacks,
    ):
        self.session = session
        self._run_tool = run_tool
        self._pipeline = pipeline
        self._callbacks = callbacks

    async def dispatch(self, calls: Sequence[ToolCall]) -> List[ToolResult] | BatchComplete:
        """
        Run *calls* and return their results in call order.

        Raises
        ------
        OrchestrationCancelled
            If the session is aborted before the batch finishes.
        """
        normal, render = classify_calls(calls)
        results: Dict[int, ToolResult] = {}
        tasks: List[asyncio.Task] = []

        logger.info(
            "Dispatching %d call(s): %d normal, %d render", len(calls), len(normal), len(render)
        )
        try:
            for index, call in normal:
                self.session.checkpoint()
                tasks.append(asyncio.create_task(self._run_normal(index, call, results)))

            for index, call, args in render:
                self.session.checkpoint()
                result = await self._run_render(call, args)
                results[index] = result
                if args.task_completed:
                    # Remaining normal calls still settle before the batch ends.
                    await asyncio.gather(*tasks)
                    self.session.checkpoint()
                    return BatchComplete(results)

            await asyncio.gather(*tasks)
        except BaseException:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            raise

        self.session.checkpoint()
        missing = [index for index in range(len(calls)) if index not in results]
        assert not missing, f"Missing results for calls {missing}"
        return [results[index] for index in range(len(calls))]

    async def _run_normal(self, index: int, call: ToolCall, results: Dict[int, ToolResult]) -> None:
        results[index] = await self._run_tool(call)

    # ------------------------------------------------------------------
    # Render calls
    # ------------------------------------------------------------------
    async def _run_render(self, call: ToolCall, args: RenderArgs) -> ToolResult:
        code = await self._generate_with_retry(args)
        self.session.checkpoint()

        binder = ActionBinder(args)
        html = self._pipeline.execute(code, args.data, binder)
        self._callbacks.ui(html)

        if args.task_completed:
            logger.info("Render '%s' completed the task", args.sub_goal)
            return ToolResult(name=call.name, id=call.id, result=_rendered(args, done=True))

        if not args.requires_user_action:
            return ToolResult(name=call.name, id=call.id, result=_rendered(args))

        self.session.transition(LoopState.AWAITING_USER_ACTION)
        try:
            action = await self.session.gate.await_decision()
        finally:
            if not self.session.aborted:
                self.session.transition(LoopState.DISPATCHING)
        self.session.checkpoint()
        logger.info("User chose '%s' for '%s'", action.action_id, args.sub_goal)
        return ToolResult(name=call.name, id=call.id, result=action.as_result())

    async def _generate_with_retry(self, args: RenderArgs) -> str:
        """Generate once; on failure, let the host decide on exactly one more attempt."""
        self.session.checkpoint()
        try:
            return await self._pipeline.generate(args)
        except (RenderGenerationError, ProviderError) as exc:
            logger.warning("Render generation failed: %s", exc)
            self.session.checkpoint()
            if not self._callbacks.can_retry_render:
                raise
            retry = await self._callbacks.render_retry(exc)
            self.session.checkpoint()
            if not retry:
                self.session.abort(RenderCancelledError(f"Render retry declined: {exc}"))
                raise OrchestrationCancelled(str(self.session.abort_reason)) from exc

        logger.info("Retrying render generation for '%s'", args.sub_goal)
        return await self._pipeline.generate(args)


def _rendered(args: RenderArgs, done: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {"type": "rendered", "stepType": args.step_type}
    if done:
        result["taskCompleted"] = True
    return result


