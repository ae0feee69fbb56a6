"""
Herald MCP - SSE binding
------------------------
Multi-session HTTP transport. ``GET <sse_path>`` opens a session and streams
its responses as server-sent events; the first event (``endpoint``) tells the
client where to POST its JSON-RPC messages. ``POST <message_path>?sessionId=``
enqueues one message on that session and returns 202 immediately; the
response arrives later on the session's own stream.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import uvicorn
from fastapi import FastAPI, Query, Request, status
from fastapi.responses import PlainTextResponse, Response
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from herald_mcp.core.config import TransportConfig
from herald_mcp.sdk.client import AsyncHeraldClient
from herald_mcp.version import __version__

from .errors import SessionLimitExceeded, UnknownSession
from .multiplexer import Session, SessionMultiplexer
from .registry import ToolRegistry
from .session import McpSession
from .transport import Transport

logger = logging.getLogger("HeraldMCP.mcp.sse")

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def endpoint_url(message_path: str, session_id: str) -> str:
    return f"{message_path}?sessionId={session_id}"


async def session_events(
    multiplexer: SessionMultiplexer,
    session: Session,
    message_path: str,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Event stream for one SSE session: the ``endpoint`` bootstrap event,
    then one ``message`` event per response, in completion order.

    The session is closed when the stream ends for any reason (client
    disconnect, server shutdown, cancellation).
    """
    try:
        yield {"event": "endpoint", "data": endpoint_url(message_path, session.session_id)}
        while True:
            message = await session.outbox.get()
            yield {"event": "message", "data": json.dumps(message)}
    finally:
        multiplexer.close(session.session_id)


async def _close_session(multiplexer: SessionMultiplexer, session_id: str) -> None:
    # Must run on the event loop, not in the threadpool.
    multiplexer.close(session_id)


def create_sse_app(registry: ToolRegistry, config: TransportConfig) -> FastAPI:
    multiplexer = SessionMultiplexer(
        lambda session_id: McpSession(registry, label=f"sse:{session_id[:8]}"),
        max_sessions=config.max_sessions,
    )

    app = FastAPI(
        title="Herald MCP",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.multiplexer = multiplexer

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        # Wrong method on a known path is reported like an unknown path.
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return PlainTextResponse("Not Found", status_code=status.HTTP_404_NOT_FOUND)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.get(config.sse_path)
    async def open_stream(request: Request) -> Response:
        try:
            session = multiplexer.open()
        except SessionLimitExceeded as exc:
            return PlainTextResponse(str(exc), status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        logger.debug("SSE stream opened from %s", request.client.host if request.client else "unknown")
        return EventSourceResponse(
            session_events(multiplexer, session, config.message_path),
            headers=_SSE_HEADERS,
            ping=config.ping_interval_sec,
            background=BackgroundTask(_close_session, multiplexer, session.session_id),
        )

    @app.post(config.message_path)
    async def post_message(
        request: Request,
        session_id: Optional[str] = Query(default=None, alias="sessionId"),
    ) -> Response:
        try:
            multiplexer.get(session_id)
        except UnknownSession as exc:
            return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)

        raw = await request.body()
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return PlainTextResponse(f"Invalid JSON payload: {exc}", status_code=status.HTTP_400_BAD_REQUEST)
        if not isinstance(message, dict):
            return PlainTextResponse(
                "Invalid JSON payload: expected a JSON-RPC object",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        try:
            await multiplexer.submit(session_id, message)
        except UnknownSession as exc:
            return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)
        return PlainTextResponse("Accepted", status_code=status.HTTP_202_ACCEPTED)

    return app


def _uvicorn_log_level(level: str) -> str:
    level = level.lower()
    if level == "warn":
        return "warning"
    if level in ("critical", "error", "warning", "info", "debug"):
        return level
    return "info"


class SseTransport(Transport):
    variant = "multi-session"

    def __init__(
        self,
        registry: ToolRegistry,
        config: TransportConfig,
        client: Optional[AsyncHeraldClient] = None,
        log_level: str = "INFO",
    ):
        super().__init__(registry, client)
        self.config = config
        self.log_level = log_level
        self.app = create_sse_app(registry, config)

    @property
    def multiplexer(self) -> SessionMultiplexer:
        return self.app.state.multiplexer

    async def run(self) -> None:
        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=self.config.host,
                port=self.config.port,
                log_level=_uvicorn_log_level(self.log_level),
            )
        )
        logger.info(
            "Herald MCP server (sse) listening on http://%s:%d%s",
            self.config.host,
            self.config.port,
            self.config.sse_path,
        )
        try:
            await server.serve()
        finally:
            self.multiplexer.close_all()
