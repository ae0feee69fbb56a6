"""
Per-connection MCP protocol state.

One McpSession exists per client connection: the single stdio session, or
one per SSE channel. It decodes JSON-RPC requests, enforces the
initialize -> initialized lifecycle and turns tool dispatch outcomes into
response envelopes. It never writes to a transport itself; callers deliver
the returned message.
"""

import logging
from typing import Any, Dict, Optional

from herald_mcp.version import __version__

from .errors import HandlerError, McpError
from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    SERVER_NAME,
    SUPPORTED_PROTOCOL_VERSIONS,
    error_message,
    negotiate_protocol_version,
    result_message,
)
from .registry import ToolCallEnvelope, ToolRegistry, ToolResult

logger = logging.getLogger("HeraldMCP.mcp.session")

_NOT_INITIALIZED = "Server not initialized. Send initialize then notifications/initialized."


class McpSession:
    def __init__(self, registry: ToolRegistry, label: str = "stdio"):
        self.registry = registry
        self.label = label
        self.negotiated = False
        self.initialized = False
        self.protocol_version = SUPPORTED_PROTOCOL_VERSIONS[0]
        self.client_capabilities: Dict[str, Any] = {}
        self.client_info: Dict[str, Any] = {}

    async def handle_message(self, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Handle one decoded JSON-RPC message and return the response, if any.

        Unexpected failures become a -32603 error for requests; one bad
        message never ends the session.
        """
        msg_id = msg.get("id")
        try:
            return await self._dispatch(msg)
        except Exception:
            logger.exception("Unexpected error during RPC dispatch (session=%s)", self.label)
            if msg_id is None:
                return None
            return error_message(msg_id, INTERNAL_ERROR, "Internal error during request dispatch.")

    async def _dispatch(self, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        msg_id = msg.get("id")
        method = msg.get("method")
        params = msg.get("params")

        if not isinstance(method, str):
            if msg_id is not None:
                return error_message(msg_id, INVALID_REQUEST, "Invalid Request: missing method")
            return None

        if method == "initialize":
            if msg_id is None:
                return None
            if params is None:
                params = {}
            if not isinstance(params, dict):
                return error_message(msg_id, INVALID_PARAMS, "Invalid params: initialize params must be an object")
            return self._initialize(msg_id, params)

        if method == "notifications/initialized":
            if self.negotiated:
                self.initialized = True
                logger.info("Client initialized connection (session=%s)", self.label)
            else:
                logger.warning("Ignored notifications/initialized before successful initialize")
            return None

        if method == "ping":
            if msg_id is None:
                return None
            return result_message(msg_id, {})

        if method in ("tools/list", "tools/call"):
            if msg_id is None:
                logger.debug("Ignoring %s notification without id", method)
                return None
            if not self.initialized:
                return error_message(msg_id, INVALID_REQUEST, _NOT_INITIALIZED)
            if params is None:
                params = {}
            if not isinstance(params, dict):
                return error_message(msg_id, INVALID_PARAMS, f"Invalid params: {method} params must be an object")
            if method == "tools/list":
                return result_message(msg_id, {"tools": self.registry.list_tools()})
            return await self._call_tool(msg_id, params)

        if msg_id is not None:
            return error_message(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        logger.debug("Ignoring unknown notification method: %s", method)
        return None

    def _initialize(self, msg_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        negotiated = negotiate_protocol_version(requested)
        if negotiated is None:
            return error_message(
                msg_id,
                INVALID_PARAMS,
                f"Unsupported protocol version: {requested}. "
                f"Supported versions: {', '.join(SUPPORTED_PROTOCOL_VERSIONS)}",
            )

        capabilities = params.get("capabilities")
        client_info = params.get("clientInfo")
        self.negotiated = True
        self.initialized = False
        self.protocol_version = negotiated
        self.client_capabilities = capabilities if isinstance(capabilities, dict) else {}
        self.client_info = client_info if isinstance(client_info, dict) else {}

        return result_message(msg_id, {
            "protocolVersion": negotiated,
            "capabilities": {
                "tools": {
                    "listChanged": False,
                },
            },
            "serverInfo": {
                "name": SERVER_NAME,
                "version": __version__,
            },
        })

    async def _call_tool(self, msg_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name.strip():
            return error_message(msg_id, INVALID_PARAMS, "Invalid params: tools/call requires non-empty string name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return error_message(msg_id, INVALID_PARAMS, "Invalid params: tools/call arguments must be an object")

        envelope = ToolCallEnvelope(tool_name=name.strip(), arguments=arguments)
        try:
            result = await self.registry.dispatch(envelope)
        except HandlerError as exc:
            result = ToolResult.text(f"Error: {exc}", is_error=True)
        except McpError as exc:
            return error_message(msg_id, exc.code, str(exc))
        return result_message(msg_id, result.to_dict())
