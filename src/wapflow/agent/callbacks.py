"""UI display layer: the callbacks a host hands to the engine."""

import inspect
import logging
from typing import (
    Awaitable,
    Callable,
    Optional,
    Union,
)

from wapflow.core.schema import UserAction

logger = logging.getLogger(__name__)

RenderRetryCallback = Callable[[Exception], Union[bool, Awaitable[bool]]]


class EngineCallbacks:
    """
    Host-facing sinks.  Every callback is optional; a missing one falls back to the log.

    ``on_render_retry`` may be a plain function or a coroutine function returning whether the
    failed render should be generated once more.
    """

    def __init__(
        self,
        on_thinking: Optional[Callable[[str], None]] = None,
        on_ui: Optional[Callable[[str], None]] = None,
        on_response: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_user_action: Optional[Callable[[UserAction], None]] = None,
        on_render_retry: Optional[RenderRetryCallback] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self.on_thinking = on_thinking
        self.on_ui = on_ui
        self.on_response = on_response
        self.on_error = on_error
        self.on_user_action = on_user_action
        self.on_render_retry = on_render_retry
        self.on_complete = on_complete

    def thinking(self, text: str) -> None:
        if self.on_thinking:
            self.on_thinking(text)
        elif text:
            logger.info("[Thinking] %s", text)

    def ui(self, html: str) -> None:
        if self.on_ui:
            self.on_ui(html)
        elif html:
            logger.info("[UI] %s", html)

    def response(self, text: str) -> None:
        if self.on_response:
            self.on_response(text)
        else:
            logger.info("[Response] %s", text)

    def error(self, exc: Exception) -> None:
        if self.on_error:
            self.on_error(exc)
        else:
            logger.error("[Error] %s", exc)

    def user_action(self, action: UserAction) -> None:
        if self.on_user_action:
            self.on_user_action(action)

    @property
    def can_retry_render(self) -> bool:
        return self.on_render_retry is not None

    async def render_retry(self, exc: Exception) -> bool:
        """Ask the host whether a failed render should be retried."""
        if self.on_render_retry is None:
            return False
        decision = self.on_render_retry(exc)
        if inspect.isawaitable(decision):
            decision = await decision
        return bool(decision)

    def complete(self) -> None:
        if self.on_complete:
            self.on_complete()
