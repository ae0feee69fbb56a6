"""
Session multiplexer for the SSE binding.

Owns the table of open sessions. Each session gets an inbox consumed by its
own worker task, so a session's messages are handled in arrival order while
different sessions interleave on the event loop. Responses go only to the
outbox of the session that received the request.
"""

import asyncio
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import SessionLimitExceeded, UnknownSession
from .session import McpSession

logger = logging.getLogger("HeraldMCP.mcp.multiplexer")


class SessionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class Session:
    session_id: str
    protocol: McpSession
    created_at: float = field(default_factory=time.time)
    state: SessionState = SessionState.CONNECTING
    inbox: "asyncio.Queue[Dict[str, Any]]" = field(default_factory=asyncio.Queue)
    outbox: "asyncio.Queue[Dict[str, Any]]" = field(default_factory=asyncio.Queue)
    worker: Optional["asyncio.Task[None]"] = None

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN


class SessionMultiplexer:
    def __init__(
        self,
        protocol_factory: Callable[[str], McpSession],
        max_sessions: Optional[int] = None,
    ):
        self._protocol_factory = protocol_factory
        self._max_sessions = max_sessions
        self._sessions: Dict[str, Session] = {}

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def _mint_session_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex
            if session_id not in self._sessions:
                return session_id

    def open(self) -> Session:
        """Create, store and start a new session. Must run on the event loop."""
        if self._max_sessions is not None and len(self._sessions) >= self._max_sessions:
            logger.warning("Rejecting SSE connection: %d sessions already open", len(self._sessions))
            raise SessionLimitExceeded(self._max_sessions)

        session_id = self._mint_session_id()
        session = Session(session_id=session_id, protocol=self._protocol_factory(session_id))
        self._sessions[session_id] = session
        session.worker = asyncio.create_task(self._run(session), name=f"herald-mcp-session-{session_id[:8]}")
        session.state = SessionState.OPEN
        logger.info("SSE session %s opened (%d active)", session_id, len(self._sessions))
        return session

    def get(self, session_id: Optional[str]) -> Session:
        session = self._sessions.get(session_id or "")
        if session is None or not session.is_open:
            raise UnknownSession(session_id)
        return session

    async def submit(self, session_id: Optional[str], message: Dict[str, Any]) -> Session:
        session = self.get(session_id)
        await session.inbox.put(message)
        return session

    def close(self, session_id: str) -> None:
        """Remove a session and cancel whatever it is still processing. Idempotent."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.state = SessionState.CLOSED
        if session.worker is not None and not session.worker.done():
            session.worker.cancel()
        logger.info("SSE session %s closed (%d active)", session_id, len(self._sessions))

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    async def _run(self, session: Session) -> None:
        while True:
            message = await session.inbox.get()
            response = await session.protocol.handle_message(message)
            if response is None:
                continue
            if not session.is_open:
                logger.debug("Discarding response for closed session %s", session.session_id)
                return
            await session.outbox.put(response)
