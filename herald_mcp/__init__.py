"""
Herald MCP: exposes the Herald secrets gateway to MCP clients over stdio or SSE.
"""

from herald_mcp.version import __version__

__all__ = ["__version__"]
