"""
Herald MCP Configuration
------------------------
Startup configuration for the MCP server. Built once from environment
variables by the CLI and passed down to the transport selector; nothing
below the CLI reads the environment directly.
"""

import os
import logging
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from herald_mcp.sdk.client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SEC, normalize_base_url

TRANSPORT_MODES = ("stdio", "sse")
DEFAULT_TOOL_RESPONSE_MAX_CHARS = 32768


class ConfigurationError(Exception):
    """Invalid or missing startup configuration. Fatal: nothing is served."""


class TransportConfig(BaseModel):
    """Transport selection and SSE listener settings."""
    mode: Literal["stdio", "sse"] = "stdio"
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    sse_path: str = "/sse"
    message_path: str = "/message"
    max_sessions: Optional[int] = Field(default=None, ge=1)
    ping_interval_sec: int = Field(default=15, ge=1)

    @field_validator("sse_path", "message_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("endpoint paths must start with '/'")
        return value


class BackendConfig(BaseModel):
    """Herald backend connection settings."""
    url: str = DEFAULT_BASE_URL
    token: str = ""
    timeout_sec: float = Field(default=DEFAULT_TIMEOUT_SEC, gt=0)

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str) -> str:
        return normalize_base_url(value)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"unknown log level {value!r}")
        return normalized


class HeraldMcpConfig(BaseModel):
    """Root configuration for the Herald MCP server."""
    transport: TransportConfig = Field(default_factory=TransportConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    log: LoggingConfig = Field(default_factory=LoggingConfig)
    tool_response_max_chars: int = Field(default=DEFAULT_TOOL_RESPONSE_MAX_CHARS, ge=256)

    @classmethod
    def from_env(cls) -> "HeraldMcpConfig":
        """
        Load configuration from environment variables.

        Raises ConfigurationError for any value that cannot be used, including
        an unrecognized MCP_TRANSPORT; there is no silent fallback.
        """
        mode = os.environ.get("MCP_TRANSPORT", "stdio").strip() or "stdio"
        if mode not in TRANSPORT_MODES:
            raise ConfigurationError(
                f"Unrecognized MCP_TRANSPORT {mode!r}; expected one of {', '.join(TRANSPORT_MODES)}"
            )

        try:
            return cls(
                transport=TransportConfig(
                    mode=mode,
                    host=os.environ.get("MCP_HOST", "0.0.0.0"),
                    port=_int_env("MCP_PORT", 8000),
                    sse_path=os.environ.get("MCP_SSE_PATH", "/sse"),
                    message_path=os.environ.get("MCP_MESSAGE_PATH", "/message"),
                    max_sessions=_optional_int_env("MCP_MAX_SESSIONS"),
                    ping_interval_sec=_int_env("MCP_SSE_PING_SEC", 15),
                ),
                backend=BackendConfig(
                    url=os.environ.get("HERALD_URL", DEFAULT_BASE_URL),
                    token=os.environ.get("HERALD_API_TOKEN", ""),
                    timeout_sec=_float_env("HERALD_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC),
                ),
                log=LoggingConfig(
                    level=os.environ.get("HERALD_MCP_LOG_LEVEL", "INFO"),
                    file=os.environ.get("HERALD_MCP_LOG_FILE") or None,
                ),
                tool_response_max_chars=_int_env(
                    "HERALD_MCP_TOOL_RESPONSE_MAX_CHARS", DEFAULT_TOOL_RESPONSE_MAX_CHARS
                ),
            )
        except ValidationError as exc:
            raise ConfigurationError(_describe_validation_error(exc)) from exc

    def with_overrides(
        self,
        *,
        mode: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> "HeraldMcpConfig":
        """Apply CLI overrides, re-validating the transport section."""
        if mode is not None and mode not in TRANSPORT_MODES:
            raise ConfigurationError(
                f"Unrecognized transport {mode!r}; expected one of {', '.join(TRANSPORT_MODES)}"
            )
        updates = {
            key: value
            for key, value in (("mode", mode), ("host", host), ("port", port))
            if value is not None
        }
        if not updates:
            return self
        try:
            transport = TransportConfig.model_validate({**self.transport.model_dump(), **updates})
        except ValidationError as exc:
            raise ConfigurationError(_describe_validation_error(exc)) from exc
        return self.model_copy(update={"transport": transport})


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {name} value {raw!r}; expected an integer") from None


def _optional_int_env(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return _int_env(name, 0)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {name} value {raw!r}; expected a number") from None


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "config"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid configuration: " + "; ".join(problems)
