import asyncio
import json
import logging
import sys
import threading
from typing import Any, BinaryIO, Dict, Optional, TextIO

from herald_mcp.sdk.client import AsyncHeraldClient

from .registry import ToolRegistry
from .session import McpSession
from .transport import Transport

logger = logging.getLogger("HeraldMCP.mcp.stdio")


def read_rpc_message(stream: BinaryIO) -> Optional[Dict[str, Any]]:
    """
    Read one inbound JSON-RPC message from a binary stream.

    Supports both:
    - newline-delimited JSON (simple stdio clients)
    - Content-Length framed JSON-RPC (LSP/MCP-style clients)

    Returns None at end of stream.
    """
    while True:
        first_line = stream.readline()
        if not first_line:
            return None
        if not first_line.strip():
            continue

        if first_line.lower().startswith(b"content-length:"):
            try:
                content_length = int(first_line.split(b":", 1)[1].strip())
                if content_length <= 0:
                    raise ValueError("content length must be positive")
            except ValueError:
                logger.warning("Invalid Content-Length header: %r", first_line)
                if not _consume_framing_headers(stream):
                    return None
                continue

            if not _consume_framing_headers(stream):
                return None

            payload = stream.read(content_length)
            if not payload:
                return None
            if len(payload) != content_length:
                logger.warning(
                    "Truncated framed JSON payload (%d/%d bytes).",
                    len(payload),
                    content_length,
                )
                return None
            try:
                msg = json.loads(payload.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning("Invalid framed JSON payload")
                continue
            if isinstance(msg, dict):
                return msg
            logger.warning("Ignoring framed JSON payload that is not an object")
            continue

        try:
            msg = json.loads(first_line.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Skipping non-JSON line on stdio transport")
            continue
        if isinstance(msg, dict):
            return msg
        logger.debug("Skipping JSON value that is not an object on stdio transport")


def _consume_framing_headers(stream: BinaryIO) -> bool:
    while True:
        header_line = stream.readline()
        if not header_line:
            return False
        if header_line in (b"\r\n", b"\n"):
            return True


class StdioTransport(Transport):
    """Single-session binding: one MCP session for the life of the process."""

    variant = "single-session"

    def __init__(
        self,
        registry: ToolRegistry,
        client: Optional[AsyncHeraldClient] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[TextIO] = None,
    ):
        super().__init__(registry, client)
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout
        self.closed = False
        self.reader_thread: Optional[threading.Thread] = None

    def _start_reader(self, queue: "asyncio.Queue[Optional[Dict[str, Any]]]") -> threading.Thread:
        """
        Pump stdin into ``queue`` from a daemon thread outside the loop's
        executor; shutdown never waits on a blocked readline. ``None`` is
        queued once at end of stream.
        """
        loop = asyncio.get_running_loop()

        def pump() -> None:
            while True:
                try:
                    msg = read_rpc_message(self._stdin)
                except (OSError, ValueError) as exc:
                    logger.warning("stdin read failed: %s", exc)
                    msg = None
                try:
                    loop.call_soon_threadsafe(queue.put_nowait, msg)
                except RuntimeError:
                    return
                if msg is None:
                    return

        thread = threading.Thread(target=pump, name="herald-mcp-stdin", daemon=True)
        thread.start()
        return thread

    def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            self._stdout.write(json.dumps(message) + "\n")
            self._stdout.flush()
        except (BrokenPipeError, OSError) as exc:
            self.closed = True
            logger.warning("MCP stdio transport closed while sending: %s", exc)

    async def run(self) -> None:
        session = McpSession(self.registry, label="stdio")
        inbound: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self.reader_thread = self._start_reader(inbound)
        logger.info("Herald MCP server (stdio) ready")
        while not self.closed:
            msg = await inbound.get()
            if msg is None:
                logger.info("stdin closed; shutting down stdio transport")
                break
            response = await session.handle_message(msg)
            if response is not None:
                self.send(response)
        self.closed = True
