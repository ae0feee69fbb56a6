from unittest.mock import patch

import pytest

import herald_mcp.cli as cli
from herald_mcp.core.config import HeraldMcpConfig
from herald_mcp.sdk.errors import GatewayConnectionError


class _FakeClient:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def health(self):
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MCP_TRANSPORT", "MCP_PORT", "HERALD_URL", "HERALD_MCP_LOG_FILE", "HERALD_MCP_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _doctor(client, argv=("doctor",)):
    args = cli.build_parser().parse_args(list(argv))
    with patch.object(cli, "HeraldClient", lambda *a, **kw: client):
        return cli.cmd_doctor(HeraldMcpConfig(), args)


def test_doctor_passes_when_backend_ok(capsys):
    rc = _doctor(_FakeClient(result={"status": "ok", "uptime_seconds": 5, "providers": []}))
    out = capsys.readouterr().out
    assert rc == 0
    assert "Health check: PASS" in out
    assert "Status: ok" in out


def test_doctor_reports_degraded_backend():
    assert _doctor(_FakeClient(result={"status": "degraded", "providers": []})) == 1


def test_doctor_fails_when_backend_unreachable(capsys):
    rc = _doctor(_FakeClient(error=GatewayConnectionError("failed to reach Herald")))
    assert rc == 1
    assert "Health check: FAIL" in capsys.readouterr().out


def test_configuration_error_exits_2(monkeypatch):
    monkeypatch.setenv("MCP_TRANSPORT", "websocket")
    assert cli.main([]) == 2


def test_serve_flags_override_environment(monkeypatch):
    captured = {}

    def fake_serve(config):
        captured["config"] = config
        return 0

    monkeypatch.setattr(cli, "cmd_serve", fake_serve)
    assert cli.main(["serve", "--transport", "sse", "--port", "9123"]) == 0
    assert captured["config"].transport.mode == "sse"
    assert captured["config"].transport.port == 9123


def test_serve_is_the_default_command(monkeypatch):
    monkeypatch.setenv("MCP_PORT", "8111")
    captured = {}

    def fake_serve(config):
        captured["config"] = config
        return 0

    monkeypatch.setattr(cli, "cmd_serve", fake_serve)
    assert cli.main([]) == 0
    assert captured["config"].transport.port == 8111
