"""
Transport interface and startup selection.

Both bindings expose the same Tool Registry: ``stdio`` serves one implicit
session, ``sse`` multiplexes many sessions over HTTP.
"""

import abc
import logging
from typing import Optional

from herald_mcp.core.config import ConfigurationError, HeraldMcpConfig
from herald_mcp.sdk.client import AsyncHeraldClient

from .registry import ToolRegistry

logger = logging.getLogger("HeraldMCP.mcp.transport")


class Transport(abc.ABC):
    variant: str = ""

    def __init__(self, registry: ToolRegistry, client: Optional[AsyncHeraldClient] = None):
        self.registry = registry
        self.client = client

    @abc.abstractmethod
    async def run(self) -> None:
        """Serve until the channel closes."""

    async def serve(self) -> None:
        try:
            await self.run()
        finally:
            if self.client is not None:
                await self.client.close()


def select_transport(
    config: HeraldMcpConfig,
    client: Optional[AsyncHeraldClient] = None,
) -> Transport:
    """
    Build the transport named by ``config.transport.mode``.

    Raises ConfigurationError for anything other than ``stdio`` or ``sse``;
    nothing is bound in that case.
    """
    from .handlers import build_registry
    from .sse import SseTransport
    from .stdio import StdioTransport

    mode = config.transport.mode
    if mode not in ("stdio", "sse"):
        raise ConfigurationError(f"Unrecognized transport {mode!r}")

    if client is None:
        client = AsyncHeraldClient(
            base_url=config.backend.url,
            token=config.backend.token,
            timeout=config.backend.timeout_sec,
        )
    registry = build_registry(client, max_chars=config.tool_response_max_chars)

    logger.info("Selected %s transport (backend=%s)", mode, config.backend.url)
    if mode == "sse":
        return SseTransport(registry, config.transport, client=client, log_level=config.log.level)
    return StdioTransport(registry, client=client)
