"""
HTTP host for wapflow.

Runs orchestrations in-process and exposes them as sessions:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - start an orchestration: {"message": "..."}.
- **GET /sessions** - list known session IDs.
- **GET /sessions/{id}** - state and ordered event list of one session.
- **POST /sessions/{id}/actions** - submit a user action: {"actionId": "...", "payload": {...}}.
- **POST /sessions/{id}/render-retry** - answer a render-retry question: {"retry": true}.
- **POST /sessions/{id}/abort** - abort the orchestration (idempotent).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Callable,
    Dict,
    List,
    Optional,
)

from fastapi import (
    FastAPI,
    HTTPException,
    Request,
)
from fastapi.middleware.cors import CORSMiddleware

from wapflow.agent.agent_loop import (
    OrchestrationHandle,
    Orchestrator,
)
from wapflow.agent.callbacks import EngineCallbacks
from wapflow.api.models import (
    ActionResponse,
    RenderRetryRequest,
    SessionEvent,
    SessionRequest,
    SessionResponse,
    SessionStatus,
)
from wapflow.common import (
    AnsiColors,
    colored_print,
)
from wapflow.config import settings
from wapflow.core.schema import UserAction
from wapflow.tools.todo_api import TodoApiClient

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[EngineCallbacks], Orchestrator]


# ---------------------------------------------------------------------------
# Session bookkeeping
# ---------------------------------------------------------------------------
class ApiSession:
    """One orchestration plus the events it emitted, as seen by HTTP clients."""

    def __init__(self, orchestrator_factory: OrchestratorFactory):
        self.events: List[SessionEvent] = []
        self._retry: Optional[asyncio.Future] = None
        callbacks = EngineCallbacks(
            on_thinking=lambda text: self._emit("thinking", text),
            on_ui=lambda html: self._emit("ui", html),
            on_response=lambda text: self._emit("response", text),
            on_error=lambda exc: self._emit("error", str(exc)),
            on_render_retry=self._ask_render_retry,
            on_complete=lambda: self._emit("complete"),
        )
        self.orchestrator = orchestrator_factory(callbacks)
        self.handle: Optional[OrchestrationHandle] = None

    def start(self, message: str) -> str:
        self.handle = self.orchestrator.execute(message)
        return self.handle.session_id

    def _emit(self, event_type: str, data: object = None) -> None:
        self.events.append(SessionEvent(type=event_type, data=data))

    async def _ask_render_retry(self, exc: Exception) -> bool:
        self._retry = asyncio.get_running_loop().create_future()
        self._emit("render_retry", str(exc))
        try:
            return await self._retry
        finally:
            self._retry = None

    @property
    def awaiting_render_retry(self) -> bool:
        return self._retry is not None and not self._retry.done()

    def answer_render_retry(self, retry: bool) -> bool:
        if not self.awaiting_render_retry:
            return False
        self._retry.set_result(retry)
        return True

    def abort(self) -> None:
        assert self.handle is not None
        self.handle.abort()
        # An open retry question would otherwise keep the loop from reaching its next checkpoint
        self.answer_render_retry(False)

    def status(self) -> SessionStatus:
        assert self.handle is not None
        return SessionStatus(
            session_id=self.handle.session_id,
            state=self.handle.state,
            awaiting_action=self.handle.session.gate.pending,
            awaiting_render_retry=self.awaiting_render_retry,
            events=list(self.events),
        )


@asynccontextmanager
async def _lifespan(api: FastAPI) -> AsyncIterator[None]:
    # One site client (and connection pool) shared by every session of the app
    async with TodoApiClient() as todo_api:
        api.state.todo_api = todo_api
        yield
    logger.info("Site API client closed")


def _get_session(request: Request, session_id: str) -> ApiSession:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def _prune_sessions(sessions: Dict[str, ApiSession], limit: int) -> None:
    """Forget the oldest finished sessions once more than *limit* are kept."""
    finished = [key for key, session in sessions.items() if session.handle.done()]
    for key in finished[: max(len(sessions) - limit, 0)]:
        del sessions[key]
        logger.debug("Dropped finished session %s", key)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
def create_app(
    orchestrator_factory: Optional[OrchestratorFactory] = None,
    max_sessions: Optional[int] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    *orchestrator_factory* wires each session's engine; by default every session runs against the
    site client the app opens at startup.  At most *max_sessions* sessions are remembered; running
    ones are never dropped.
    """
    api = FastAPI(
        title="wapflow API",
        version="0.1.0",
        description="WAP orchestrator API",
        lifespan=_lifespan,
    )

    def default_orchestrator(callbacks: EngineCallbacks) -> Orchestrator:
        return Orchestrator(api=api.state.todo_api, callbacks=callbacks)

    api.state.sessions = {}
    api.state.orchestrator_factory = orchestrator_factory or default_orchestrator
    api.state.max_sessions = max_sessions or settings.API_MAX_SESSIONS

    # Allow a browser host served from another local port
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost", f"http://localhost:{settings.API_PORT}"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @api.get("/health", summary="Health check")
    async def health() -> Dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @api.post("/sessions", response_model=SessionResponse, summary="Start an orchestration")
    async def create_session(req: SessionRequest, request: Request) -> SessionResponse:
        """Start orchestrating *message* and return the new session's ID."""
        session = ApiSession(request.app.state.orchestrator_factory)
        session_id = session.start(req.message)
        request.app.state.sessions[session_id] = session
        _prune_sessions(request.app.state.sessions, request.app.state.max_sessions)
        return SessionResponse(session_id=session_id, state=session.handle.state)

    @api.get("/sessions", response_model=List[str], summary="List sessions")
    async def list_sessions(request: Request) -> List[str]:
        """List all known session IDs."""
        return list(request.app.state.sessions.keys())

    @api.get("/sessions/{session_id}", response_model=SessionStatus, summary="Session status")
    async def get_session(session_id: str, request: Request) -> SessionStatus:
        """Return the state and events of one session."""
        return _get_session(request, session_id).status()

    @api.post(
        "/sessions/{session_id}/actions", response_model=ActionResponse, summary="Submit an action"
    )
    async def submit_action(
        session_id: str, action: UserAction, request: Request
    ) -> ActionResponse:
        """Forward a UI action to the session's pending confirmation."""
        session = _get_session(request, session_id)
        return ActionResponse(accepted=session.orchestrator.submit_user_action(action))

    @api.post(
        "/sessions/{session_id}/render-retry",
        response_model=ActionResponse,
        summary="Answer a render-retry question",
    )
    async def render_retry(
        session_id: str, req: RenderRetryRequest, request: Request
    ) -> ActionResponse:
        """Tell a session whether to regenerate a failed render."""
        session = _get_session(request, session_id)
        return ActionResponse(accepted=session.answer_render_retry(req.retry))

    @api.post(
        "/sessions/{session_id}/abort", response_model=SessionResponse, summary="Abort a session"
    )
    async def abort_session(session_id: str, request: Request) -> SessionResponse:
        """Abort a session; repeated calls have no further effect."""
        session = _get_session(request, session_id)
        session.abort()
        return SessionResponse(session_id=session_id, state=session.handle.state)

    @api.get("/", summary="API root")
    async def root() -> Dict[str, str]:
        """Return a simple welcome message."""
        return {"message": "Welcome to the wapflow API! Use /docs for API documentation."}

    return api


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the engine
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting wapflow API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )

    colored_print(f"wapflow API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "wapflow.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


if __name__ == "__main__":
    run_api(reload=True)
