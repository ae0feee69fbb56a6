"""
Herald gateway client public exports.
"""

from herald_mcp.sdk.client import AsyncHeraldClient, HeraldClient
from herald_mcp.sdk.errors import GatewayConnectionError, GatewayError

__all__ = [
    "HeraldClient",
    "AsyncHeraldClient",
    "GatewayError",
    "GatewayConnectionError",
]
