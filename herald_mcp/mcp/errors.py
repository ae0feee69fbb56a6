"""
Dispatch and session errors raised by the MCP layer.
"""

from typing import Optional

from .protocol import INVALID_PARAMS


class McpError(Exception):
    """Base class for errors surfaced to MCP clients."""

    code: int = INVALID_PARAMS


class UnknownTool(McpError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArguments(McpError):
    """Tool arguments failed schema validation; carries the offending field."""

    def __init__(self, tool_name: str, field: str, constraint: str):
        self.tool_name = tool_name
        self.field = field
        self.constraint = constraint
        super().__init__(f"Invalid arguments for tool {tool_name}: {field}: {constraint}")


class HandlerError(McpError):
    """A tool handler raised; the original exception is the __cause__."""

    def __init__(self, tool_name: str, cause: BaseException):
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


class UnknownSession(McpError):
    def __init__(self, session_id: Optional[str]):
        self.session_id = session_id
        super().__init__("Unknown session")


class SessionLimitExceeded(McpError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Session limit reached ({limit} open sessions)")
