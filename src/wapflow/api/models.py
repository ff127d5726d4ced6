"""
Pydantic models for wapflow API requests and responses.
This module defines the request and response schemas used by the wapflow API.
"""

from typing import (
    Any,
    List,
    Literal,
)

from pydantic import (
    BaseModel,
    Field,
)

from wapflow.agent.session import LoopState

EventType = Literal["thinking", "ui", "response", "error", "complete", "render_retry"]


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionRequest(BaseModel):
    """Request to start an orchestration."""

    message: str = Field(..., min_length=1, description="Natural-language request for wapflow")


class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str
    state: LoopState


class SessionEvent(BaseModel):
    """One callback fired by the engine, in firing order."""

    type: EventType
    data: Any = None


class SessionStatus(SessionResponse):
    """Session state together with everything the engine has emitted so far."""

    awaiting_action: bool = False
    awaiting_render_retry: bool = False
    events: List[SessionEvent] = Field(default_factory=list)


class ActionResponse(BaseModel):
    """Whether a submitted user action reached a pending confirmation."""

    accepted: bool


class RenderRetryRequest(BaseModel):
    """Answer to an outstanding render-retry question."""

    retry: bool
