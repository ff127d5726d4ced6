"""
Per-request orchestration state.

A :class:`Session` lives for exactly one user request.  It is mutated by the orchestration loop and
by two entry points callable from outside the loop: ``abort()`` and the confirmation gate's
``submit()``.  Both are expected to run on the loop's event-loop thread.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from typing import List, Optional

from wapflow.core.schema import (
    ConversationTurn,
    UserAction,
)

logger = logging.getLogger(__name__)


class OrchestrationCancelled(Exception):
    """Raised at a checkpoint after the session has been aborted. Not an error."""


class GateBusyError(AssertionError):
    """A second confirmation wait was requested while one is still outstanding."""


class LoopState(str, enum.Enum):
    """States of the orchestration loop."""

    AWAITING_PROVIDER = "awaiting_provider"
    DISPATCHING = "dispatching"
    AWAITING_USER_ACTION = "awaiting_user_action"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"

    @property
    def terminal(self) -> bool:
        return self in (LoopState.COMPLETED, LoopState.ABORTED, LoopState.ERRORED)


class ConfirmationGate:
    """Single-slot mailbox for the human decision a render call is waiting on."""

    def __init__(self) -> None:
        self._pending: Optional[asyncio.Future[UserAction]] = None

    @property
    def pending(self) -> bool:
        """True while a wait is outstanding."""
        return self._pending is not None and not self._pending.done()

    def await_decision(self) -> asyncio.Future[UserAction]:
        """Open the slot and return the future the caller awaits."""
        if self.pending:
            raise GateBusyError("A user decision is already pending")
        self._pending = asyncio.get_running_loop().create_future()
        return self._pending

    def submit(self, action: UserAction) -> bool:
        """
        Resolve the outstanding wait with *action*.

        Returns False (and changes nothing) when no wait is outstanding; a late click after the
        window closed is expected and harmless.
        """
        if not self.pending:
            logger.info("Ignoring user action '%s': no decision pending", action.action_id)
            return False
        future, self._pending = self._pending, None
        future.set_result(action)
        return True

    def force_reject(self, reason: BaseException) -> bool:
        """Reject the outstanding wait with *reason* and clear the slot."""
        if not self.pending:
            return False
        future, self._pending = self._pending, None
        future.set_exception(reason)
        return True


class Session:
    """Process-local state of one orchestration."""

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.conversation_tail: List[ConversationTurn] = []
        self.aborted = False
        self.abort_reason: Optional[BaseException] = None
        self.gate = ConfirmationGate()
        self.state = LoopState.AWAITING_PROVIDER

    def transition(self, state: LoopState) -> None:
        if state is not self.state:
            logger.info("Session %s: %s -> %s", self.session_id, self.state.value, state.value)
            self.state = state

    def abort(self, reason: BaseException | None = None) -> bool:
        """
        Request cooperative cancellation; idempotent.

        Any pending confirmation wait is rejected immediately, everything else observes the flag
        at its next checkpoint.  Returns True only for the call that actually aborted.
        """
        if self.aborted:
            return False
        self.aborted = True
        self.abort_reason = reason or OrchestrationCancelled("Orchestration aborted")
        logger.info("Session %s: abort requested (%s)", self.session_id, self.abort_reason)
        self.gate.force_reject(OrchestrationCancelled(str(self.abort_reason)))
        return True

    def checkpoint(self) -> None:
        """Raise :class:`OrchestrationCancelled` if the session has been aborted."""
        if self.aborted:
            raise OrchestrationCancelled(str(self.abort_reason))
