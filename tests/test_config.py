"""Tests for HeraldMcpConfig environment loading."""

import pytest

from herald_mcp.core.config import ConfigurationError, HeraldMcpConfig

_ENV_VARS = (
    "MCP_TRANSPORT",
    "MCP_HOST",
    "MCP_PORT",
    "MCP_SSE_PATH",
    "MCP_MESSAGE_PATH",
    "MCP_MAX_SESSIONS",
    "MCP_SSE_PING_SEC",
    "HERALD_URL",
    "HERALD_API_TOKEN",
    "HERALD_TIMEOUT_SEC",
    "HERALD_MCP_TOOL_RESPONSE_MAX_CHARS",
    "HERALD_MCP_LOG_LEVEL",
    "HERALD_MCP_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = HeraldMcpConfig.from_env()
    assert config.transport.mode == "stdio"
    assert config.transport.host == "0.0.0.0"
    assert config.transport.port == 8000
    assert config.transport.sse_path == "/sse"
    assert config.transport.message_path == "/message"
    assert config.transport.max_sessions is None
    assert config.backend.url == "http://herald:8765"
    assert config.backend.token == ""
    assert config.log.level == "INFO"
    assert config.tool_response_max_chars == 32768


def test_sse_settings_from_env(monkeypatch):
    monkeypatch.setenv("MCP_TRANSPORT", "sse")
    monkeypatch.setenv("MCP_PORT", "9100")
    monkeypatch.setenv("MCP_MAX_SESSIONS", "4")
    monkeypatch.setenv("HERALD_URL", "https://herald.internal:8765/")
    monkeypatch.setenv("HERALD_API_TOKEN", "secret")
    monkeypatch.setenv("HERALD_MCP_LOG_LEVEL", "debug")

    config = HeraldMcpConfig.from_env()

    assert config.transport.mode == "sse"
    assert config.transport.port == 9100
    assert config.transport.max_sessions == 4
    assert config.backend.url == "https://herald.internal:8765"
    assert config.backend.token == "secret"
    assert config.log.level == "DEBUG"


def test_unrecognized_transport_is_rejected(monkeypatch):
    monkeypatch.setenv("MCP_TRANSPORT", "websocket")
    with pytest.raises(ConfigurationError, match="Unrecognized MCP_TRANSPORT 'websocket'"):
        HeraldMcpConfig.from_env()


@pytest.mark.parametrize(
    "name,value",
    [
        ("MCP_PORT", "eighty"),
        ("MCP_PORT", "70000"),
        ("MCP_MAX_SESSIONS", "0"),
        ("HERALD_URL", "not-a-url"),
        ("HERALD_TIMEOUT_SEC", "0"),
        ("MCP_SSE_PATH", "sse"),
        ("HERALD_MCP_LOG_LEVEL", "chatty"),
    ],
)
def test_invalid_values_raise_configuration_error(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        HeraldMcpConfig.from_env()


def test_overrides_revalidate_transport():
    config = HeraldMcpConfig.from_env()

    updated = config.with_overrides(mode="sse", port=9000)
    assert updated.transport.mode == "sse"
    assert updated.transport.port == 9000
    assert config.transport.mode == "stdio"

    with pytest.raises(ConfigurationError):
        config.with_overrides(port=0)
    with pytest.raises(ConfigurationError):
        config.with_overrides(mode="grpc")


def test_overrides_without_changes_return_same_config():
    config = HeraldMcpConfig.from_env()
    assert config.with_overrides() is config
