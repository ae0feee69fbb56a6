"""End-to-end tool handler tests against a mocked Herald backend."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio

from herald_mcp.mcp.definitions import (
    TOOL_AUDIT,
    TOOL_HEALTH,
    TOOL_PROVISION_SECRET,
    TOOL_ROTATE,
    TOOL_ROTATE_CACHE,
    TOOL_SYNC,
)
from herald_mcp.mcp.errors import HandlerError
from herald_mcp.mcp.handlers import build_registry, format_health_summary
from herald_mcp.mcp.registry import ToolCallEnvelope
from herald_mcp.sdk.client import AsyncHeraldClient

_HEALTH = {
    "status": "ok",
    "uptime_seconds": 3600,
    "provisioner": "connect",
    "providers": [
        {"name": "connect-local", "type": "connect_server", "status": "ok", "latency_ms": 4},
        {
            "name": "cloud",
            "type": "service_account",
            "status": "degraded",
            "error": "429",
            "rate_limited_since": "2026-01-01T00:00:00Z",
        },
    ],
}


class _Backend:
    """Records requests and answers from a (method, path) -> response table."""

    def __init__(self, routes: Dict[Any, Any]):
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, text="no route")
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    def find(self, method: str, path: str) -> httpx.Request:
        for request in self.requests:
            if request.method == method and request.url.path == path:
                return request
        raise AssertionError(f"no {method} {path} request recorded")


@pytest_asyncio.fixture
async def make_registry():
    clients = []

    def _make(backend: _Backend, max_chars: int = 32768):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        clients.append(http_client)
        client = AsyncHeraldClient(base_url="http://herald:8765", token="tok", http_client=http_client)
        return build_registry(client, max_chars=max_chars)

    yield _make
    for http_client in clients:
        await http_client.aclose()


def _text(result) -> str:
    return result.content[0].text


def test_build_registry_registers_all_tools():
    registry = build_registry(AsyncHeraldClient(base_url="http://herald:8765"))
    assert sorted(registry.names()) == sorted(
        [
            "herald_health",
            "herald_inventory",
            "herald_audit",
            "herald_rotate_cache",
            "herald_sync",
            "herald_rotate",
            "herald_provision_secret",
        ]
    )
    annotations = {tool["name"]: tool["annotations"] for tool in registry.list_tools()}
    assert annotations[TOOL_HEALTH]["readOnlyHint"] is True
    assert annotations[TOOL_ROTATE]["destructiveHint"] is True
    assert annotations[TOOL_SYNC]["readOnlyHint"] is False


def test_health_summary_lists_providers_in_order():
    summary = format_health_summary(_HEALTH)
    lines = summary.splitlines()
    assert lines[0] == "Status: ok"
    assert lines[1] == "Uptime: 3600s"
    assert "Connect (local REST API" in lines[2]
    assert lines[4] == "Read providers (priority order):"
    assert lines[5].startswith("  connect-local [Connect (local, no rate limits)] - ok")
    assert "(4ms)" in lines[5]
    assert "cloud [Service Account" in lines[6]
    assert ": 429" in lines[6]
    assert "rate-limited since 2026-01-01T00:00:00Z" in lines[6]


@pytest.mark.asyncio
async def test_audit_forwards_filters_and_returns_payload(make_registry):
    entries = {"entries": [{"stack": "prod", "secret": "DB_PASSWORD", "at": "2026-01-01T00:00:00Z"}], "count": 1}
    backend = _Backend({("GET", "/v1/audit"): entries})
    registry = make_registry(backend)

    result = await registry.dispatch(ToolCallEnvelope(TOOL_AUDIT, {"stack": "prod", "hours": 24}))

    request = backend.find("GET", "/v1/audit")
    assert dict(request.url.params) == {"stack": "prod", "hours": "24"}
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(_text(result)) == entries
    assert result.is_error is False


@pytest.mark.asyncio
async def test_rotate_cache_confirms_stack(make_registry):
    backend = _Backend({("DELETE", "/v1/cache/media"): httpx.Response(204)})
    registry = make_registry(backend)

    result = await registry.dispatch(ToolCallEnvelope(TOOL_ROTATE_CACHE, {"stack": "media"}))

    assert _text(result) == "Cache cleared for stack: media"


@pytest.mark.asyncio
async def test_sync_posts_env_content(make_registry):
    backend = _Backend({("POST", "/v1/materialize/env"): {"resolved": 2, "cached": False}})
    registry = make_registry(backend)

    result = await registry.dispatch(
        ToolCallEnvelope(
            TOOL_SYNC,
            {"stack": "media", "env_content": "A=op://HomeLab/a/x\nB=op://HomeLab/b/y", "bypass_cache": True},
        )
    )

    body = json.loads(backend.find("POST", "/v1/materialize/env").content)
    assert body == {
        "stack": "media",
        "env_content": "A=op://HomeLab/a/x\nB=op://HomeLab/b/y",
        "bypass_cache": True,
    }
    assert json.loads(_text(result))["resolved"] == 2


@pytest.mark.asyncio
async def test_rotate_mentions_connect_provider(make_registry):
    backend = _Backend(
        {
            ("GET", "/v1/health"): _HEALTH,
            ("POST", "/v1/rotate/item-123"): {"stacks_redeployed": ["media"]},
        }
    )
    registry = make_registry(backend)

    result = await registry.dispatch(ToolCallEnvelope(TOOL_ROTATE, {"item_id": "item-123"}))

    text = _text(result)
    assert text.startswith("Rotation triggered")
    assert "connect-local" in text
    assert '"stacks_redeployed"' in text


@pytest.mark.asyncio
async def test_provision_secret_end_to_end(make_registry):
    backend = _Backend(
        {
            ("GET", "/v1/health"): _HEALTH,
            ("POST", "/v1/provision"): {
                "item_id": "xyz789",
                "refs": {
                    "username": "op://HomeLab/my-app-prod/username",
                    "password": "op://HomeLab/my-app-prod/password",
                },
            },
        }
    )
    registry = make_registry(backend)

    result = await registry.dispatch(
        ToolCallEnvelope(
            TOOL_PROVISION_SECRET,
            {
                "vault": "HomeLab",
                "item": "my-app-prod",
                "fields": {"username": {"value": "admin"}, "password": {}},
            },
        )
    )

    body = json.loads(backend.find("POST", "/v1/provision").content)
    assert body["category"] == "login"
    assert body["fields"]["password"] == {"generate": True}
    assert body["fields"]["username"] == {"generate": False, "value": "admin"}

    text = _text(result)
    assert "Item ID: xyz789" in text
    assert "username=op://HomeLab/my-app-prod/username" in text
    assert "password=op://HomeLab/my-app-prod/password" in text
    assert "Connect server" in text


@pytest.mark.asyncio
async def test_backend_failure_becomes_handler_error(make_registry):
    backend = _Backend({("GET", "/v1/inventory"): httpx.Response(500, text="vault locked")})
    registry = make_registry(backend)

    with pytest.raises(HandlerError, match="vault locked"):
        await registry.dispatch(ToolCallEnvelope("herald_inventory", {}))


@pytest.mark.asyncio
async def test_long_responses_are_truncated(make_registry):
    backend = _Backend({("GET", "/v1/inventory"): {"blob": "x" * 2000}})
    registry = make_registry(backend, max_chars=300)

    result = await registry.dispatch(ToolCallEnvelope("herald_inventory", {}))

    text = _text(result)
    assert len(text) <= 300
    assert "HERALD_MCP_TOOL_RESPONSE_MAX_CHARS" in text


class _DelayedBackend(_Backend):
    """Like _Backend, but answers the listed paths only after a short delay."""

    def __init__(self, routes: Dict[Any, Any], delayed: Dict[str, float]):
        super().__init__(routes)
        self.delayed = delayed
        self.completed: List[str] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        delay = self.delayed.get(request.url.path)
        if delay:
            await asyncio.sleep(delay)
        response = super().__call__(request)
        self.completed.append(request.url.path)
        return response


@pytest.mark.asyncio
async def test_rotate_succeeds_when_health_lookup_fails(make_registry):
    backend = _DelayedBackend(
        {
            ("GET", "/v1/health"): httpx.Response(503, text="health down"),
            ("POST", "/v1/rotate/abc"): {"stacks_redeployed": ["media"]},
        },
        delayed={"/v1/rotate/abc": 0.05},
    )
    registry = make_registry(backend)

    result = await registry.dispatch(ToolCallEnvelope(TOOL_ROTATE, {"item_id": "abc"}))

    text = _text(result)
    assert result.is_error is False
    assert text.startswith("Rotation triggered")
    assert "1Password web UI or CLI" in text
    assert '"stacks_redeployed"' in text
    assert "/v1/rotate/abc" in backend.completed


@pytest.mark.asyncio
async def test_provision_succeeds_when_health_lookup_fails(make_registry):
    backend = _Backend(
        {
            ("GET", "/v1/health"): httpx.Response(503, text="health down"),
            ("POST", "/v1/provision"): {"item_id": "svc-1", "refs": {"password": "op://HomeLab/svc/password"}},
        }
    )
    registry = make_registry(backend)

    result = await registry.dispatch(
        ToolCallEnvelope(TOOL_PROVISION_SECRET, {"vault": "HomeLab", "item": "svc", "fields": {"password": {}}})
    )

    text = _text(result)
    assert "Item ID: svc-1" in text
    assert "password=op://HomeLab/svc/password" in text
    assert "Provisioner: unknown" in text


@pytest.mark.asyncio
async def test_rotate_failure_reports_rotate_error_after_health_completes(make_registry):
    backend = _DelayedBackend(
        {
            ("GET", "/v1/health"): _HEALTH,
            ("POST", "/v1/rotate/abc"): httpx.Response(409, text="item locked"),
        },
        delayed={"/v1/health": 0.05},
    )
    registry = make_registry(backend)

    with pytest.raises(HandlerError, match="item locked") as excinfo:
        await registry.dispatch(ToolCallEnvelope(TOOL_ROTATE, {"item_id": "abc"}))

    assert "/v1/rotate/abc" in str(excinfo.value)
    assert sorted(backend.completed) == ["/v1/health", "/v1/rotate/abc"]
