from herald_mcp.mcp.errors import (
    HandlerError,
    InvalidArguments,
    McpError,
    SessionLimitExceeded,
    UnknownSession,
    UnknownTool,
)
from herald_mcp.mcp.handlers import HeraldToolHandlers, build_registry
from herald_mcp.mcp.multiplexer import SessionMultiplexer
from herald_mcp.mcp.registry import ToolCallEnvelope, ToolRegistry, ToolResult
from herald_mcp.mcp.session import McpSession
from herald_mcp.mcp.transport import Transport, select_transport

__all__ = [
    "HandlerError",
    "HeraldToolHandlers",
    "InvalidArguments",
    "McpError",
    "McpSession",
    "SessionLimitExceeded",
    "SessionMultiplexer",
    "ToolCallEnvelope",
    "ToolRegistry",
    "ToolResult",
    "Transport",
    "UnknownSession",
    "UnknownTool",
    "build_registry",
    "select_transport",
]
