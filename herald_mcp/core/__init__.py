from herald_mcp.core.config import ConfigurationError, HeraldMcpConfig

__all__ = ["ConfigurationError", "HeraldMcpConfig"]
