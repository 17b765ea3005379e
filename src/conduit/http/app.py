"""FastAPI application exposing the adapters over HTTP.

OpenAI-compatible completions go to the stdio adapter; agent sessions go
to the pty adapter.  All ``/v1`` routes share the optional API key check.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from conduit import __version__
from conduit.adapters.events import AgentEvent, done_event, error_event
from conduit.adapters.openai import STREAM_DONE, ChatCompletion, list_models
from conduit.config.models import ConduitConfig
from conduit.errors import ConduitError, SessionNotFoundError
from conduit.http.auth import check_api_key
from conduit.http.sse import HEARTBEAT_FRAME, SSE_HEADERS, Heartbeat, data_frame, with_heartbeat
from conduit.runtime import Runtime
from conduit.session.models import SessionOptions
from conduit.shutdown import ShutdownManager

logger = logging.getLogger(__name__)


class AgentChatRequest(BaseModel):
    """Body of ``POST /v1/agent/chat``."""

    content: str = Field(min_length=1, description="User message")
    session_id: str | None = Field(default=None, description="Existing session to continue")
    options: SessionOptions | None = Field(default=None, description="Options for a new session")


def create_app(
    config: ConduitConfig | None = None,
    runtime: Runtime | None = None,
) -> FastAPI:
    """Build the application around *runtime* (or a fresh one from *config*)."""
    if runtime is None:
        runtime = Runtime.from_config(config or ConduitConfig())
    heartbeat = runtime.config.agent.heartbeat_interval

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        shutdown = ShutdownManager(runtime)
        await runtime.janitor.start()
        logger.info("conduit %s ready (cli: %s)", __version__, runtime.config.cli.binary)
        try:
            yield
        finally:
            await shutdown.execute("server stopped")

    app = FastAPI(
        title="conduit",
        description="OpenAI-compatible API in front of the Claude CLI",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # ------------------------------------------------------------------ #
    # Errors
    # ------------------------------------------------------------------ #

    @app.exception_handler(ConduitError)
    async def _conduit_error(request: Request, exc: ConduitError) -> JSONResponse:
        headers = {"Retry-After": "1"} if exc.retryable else None
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            f"{'.'.join(str(s) for s in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        body = {
            "error": {
                "message": "Invalid request: " + "; ".join(errors),
                "type": "invalid_request_error",
            }
        }
        return JSONResponse(body, status_code=400)

    # ------------------------------------------------------------------ #
    # Routes
    # ------------------------------------------------------------------ #

    def require_api_key(request: Request) -> None:
        check_api_key(request, runtime.config.server.api_key)

    v1 = APIRouter(prefix="/v1", dependencies=[Depends(require_api_key)])

    @app.get("/health")
    async def health() -> dict[str, Any]:
        pool = runtime.pool.health()
        return {
            "status": "ok" if pool.healthy else "degraded",
            "version": __version__,
            "processes": pool.stats.model_dump(),
            "sessions": len(runtime.store),
        }

    @v1.get("/models")
    async def models() -> dict[str, Any]:
        return list_models().model_dump()

    @v1.post("/chat/completions")
    async def chat_completions(payload: dict[str, Any] = Body(...)) -> Any:
        result = await runtime.stdio.process(payload)
        if isinstance(result, ChatCompletion):
            return JSONResponse(result.model_dump())
        # Pull the opener so spawn and validation errors still get a status code.
        first = await anext(result)
        return StreamingResponse(
            _completion_frames(first, result, heartbeat),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @v1.post("/agent/chat")
    async def agent_chat(body: AgentChatRequest) -> StreamingResponse:
        session = await runtime.pty.get_or_create_session(body.session_id, body.options)
        events = runtime.pty.chat(session.session_id, body.content)
        first = await anext(events)
        return StreamingResponse(
            _agent_frames(first, events, heartbeat),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @v1.get("/agent/sessions")
    async def list_sessions() -> dict[str, Any]:
        sessions = runtime.pty.list_sessions()
        return {
            "sessions": [s.model_dump(mode="json") for s in sessions],
            "stats": runtime.store.stats().model_dump(),
        }

    @v1.get("/agent/sessions/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]:
        details = runtime.pty.get_session(session_id)
        if details is None:
            msg = f"Session {session_id} not found"
            raise SessionNotFoundError(msg, session_id=session_id)
        return details.model_dump(mode="json")

    @v1.delete("/agent/sessions/{session_id}")
    async def delete_session(session_id: str) -> dict[str, Any]:
        if not runtime.pty.delete_session(session_id):
            msg = f"Session {session_id} not found"
            raise SessionNotFoundError(msg, session_id=session_id)
        return {"deleted": True, "session_id": session_id}

    @v1.get("/agent/health")
    async def agent_health() -> dict[str, Any]:
        return runtime.pty.health()

    app.include_router(v1)
    return app


# ------------------------------------------------------------------ #
# Stream framing
# ------------------------------------------------------------------ #


async def _completion_frames(
    first: dict[str, Any] | str,
    rest: AsyncIterator[dict[str, Any] | str],
    heartbeat: float,
) -> AsyncIterator[str]:
    yield data_frame(first)
    try:
        async for item in with_heartbeat(rest, heartbeat):
            if isinstance(item, Heartbeat):
                yield HEARTBEAT_FRAME
            else:
                yield data_frame(item)
    except ConduitError as exc:
        logger.error("Completion stream failed: %s", exc.message)
        yield data_frame({"choices": [], "error": {"message": exc.message, "type": exc.error_type}})
        yield data_frame(STREAM_DONE)


async def _agent_frames(
    first: AgentEvent,
    rest: AsyncIterator[AgentEvent],
    heartbeat: float,
) -> AsyncIterator[str]:
    yield first.to_sse()
    try:
        async for item in with_heartbeat(rest, heartbeat):
            if isinstance(item, Heartbeat):
                yield HEARTBEAT_FRAME
            else:
                yield item.to_sse()
    except ConduitError as exc:
        logger.error("Agent stream failed: %s", exc.message)
        yield error_event(exc.message).to_sse()
        yield done_event().to_sse()
