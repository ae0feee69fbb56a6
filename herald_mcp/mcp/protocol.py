"""
Herald MCP Protocol Constants
"""

from typing import Optional

SUPPORTED_PROTOCOL_VERSIONS = ("2025-11-25", "2025-06-18", "2024-11-05")
JSON_SCHEMA_2020_12 = "https://json-schema.org/draft/2020-12/schema"
JSONRPC_VERSION = "2.0"
SERVER_NAME = "herald"

# Standard JSON-RPC / MCP error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def negotiate_protocol_version(requested: Optional[str]) -> Optional[str]:
    """Return the requested version when supported, the newest when absent, else None."""
    if requested is None:
        return SUPPORTED_PROTOCOL_VERSIONS[0]
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return None


def result_message(msg_id, result: dict) -> dict:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result}


def error_message(msg_id, code: int, message: str) -> dict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": msg_id,
        "error": {
            "code": code,
            "message": message,
        },
    }
