import json
import logging
from typing import Any

logger = logging.getLogger("HeraldMCP.mcp.utils")


def safe_json_dumps(payload: Any) -> str:
    try:
        return json.dumps(payload, indent=2)
    except TypeError:
        return json.dumps(str(payload), indent=2)


def truncate_tool_text(text: str, name: str, max_chars: int) -> str:
    """Apply the configured length limit to a tool response."""
    if len(text) <= max_chars:
        return text
    suffix = (
        f"\n... [truncated {len(text) - max_chars} chars; "
        "set HERALD_MCP_TOOL_RESPONSE_MAX_CHARS to increase limit]"
    )
    keep_chars = max(0, max_chars - len(suffix))
    logger.warning(
        "Truncating MCP tool response for '%s' from %d to %d chars.",
        name,
        len(text),
        max_chars,
    )
    return text[:keep_chars] + suffix
