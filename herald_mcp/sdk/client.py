"""
Herald REST API clients (sync + async).

The async client is what tool handlers use; the sync client backs the
operational CLI (``herald-mcp doctor``).
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlparse

import httpx
import requests

from herald_mcp.sdk.errors import GatewayConnectionError, GatewayError

DEFAULT_BASE_URL = "http://herald:8765"
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_PROVISION_CATEGORY = "login"


def normalize_base_url(base_url: str) -> str:
    value = base_url.rstrip("/")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid Herald base URL: {base_url!r}")
    return value


def _decode_body(content: bytes, text: str) -> Any:
    if not content:
        return {}
    try:
        return json.loads(content)
    except ValueError:
        return text


def _provision_fields(fields: Mapping[str, Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Translate tool field specs into the provision payload.

    A field without a value (or with an empty one) is sent as a generation
    request; ``concealed`` is only forwarded when the caller set it so the
    backend can auto-detect it from the field name otherwise.
    """
    payload: Dict[str, Dict[str, Any]] = {}
    for name, spec in fields.items():
        value = spec.get("value")
        entry: Dict[str, Any] = {"generate": not value}
        if value:
            entry["value"] = value
        if spec.get("concealed") is not None:
            entry["concealed"] = bool(spec["concealed"])
        payload[name] = entry
    return payload


class _BaseHeraldClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ):
        self.base_url = normalize_base_url(base_url)
        self.token = token or ""
        self.timeout = timeout

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _check_status(self, payload: Any, raw_text: str, *, path: str, status_code: int) -> Any:
        if status_code < 200 or status_code >= 300:
            raise GatewayError(
                raw_text or f"HTTP {status_code}",
                status_code=status_code,
                path=path,
                body=payload,
            )
        return payload

    def _audit_params(
        self,
        stack: Optional[str],
        secret: Optional[str],
        hours: Optional[float],
    ) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if stack:
            params["stack"] = stack
        if secret:
            params["secret"] = secret
        if hours:
            params["hours"] = str(int(hours)) if float(hours).is_integer() else str(hours)
        return params

    def _sync_payload(
        self,
        stack: str,
        env_content: str,
        out_path: Optional[str],
        bypass_cache: Optional[bool],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"stack": stack, "env_content": env_content}
        if out_path is not None:
            payload["out_path"] = out_path
        if bypass_cache is not None:
            payload["bypass_cache"] = bypass_cache
        return payload

    def _provision_payload(
        self,
        vault: str,
        item: str,
        category: Optional[str],
        fields: Mapping[str, Mapping[str, Any]],
    ) -> Dict[str, Any]:
        return {
            "vault": vault,
            "item": item,
            "category": category or DEFAULT_PROVISION_CATEGORY,
            "fields": _provision_fields(fields),
        }


class HeraldClient(_BaseHeraldClient):
    """
    Synchronous client for the Herald REST API.

    Usage:
        from herald_mcp.sdk import HeraldClient
        client = HeraldClient("http://herald:8765", token="...")
        status = client.health()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(base_url=base_url, token=token, timeout=timeout)
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "HeraldClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = self._session.request(
                method=method,
                url=self._url(path),
                headers=self._headers(),
                json=json_body,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayConnectionError(
                f"failed to reach Herald at {self.base_url}: {exc}", path=path
            ) from exc

        payload = _decode_body(response.content, response.text)
        return self._check_status(payload, response.text, path=path, status_code=response.status_code)

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/v1/health")

    def inventory(self) -> Dict[str, Any]:
        return self._request("GET", "/v1/inventory")


class AsyncHeraldClient(_BaseHeraldClient):
    """
    Async client for the Herald REST API.

    Usage:
        from herald_mcp.sdk import AsyncHeraldClient
        async with AsyncHeraldClient("http://herald:8765") as client:
            entries = await client.audit(stack="prod", hours=24)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url=base_url, token=token, timeout=timeout)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncHeraldClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method=method,
                url=self._url(path),
                headers=self._headers(),
                json=json_body,
                params=params,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise GatewayConnectionError(
                f"failed to reach Herald at {self.base_url}: {exc}", path=path
            ) from exc

        payload = _decode_body(response.content, response.text)
        return self._check_status(payload, response.text, path=path, status_code=response.status_code)

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/v1/health")

    async def inventory(self) -> Dict[str, Any]:
        return await self._request("GET", "/v1/inventory")

    async def audit(
        self,
        *,
        stack: Optional[str] = None,
        secret: Optional[str] = None,
        hours: Optional[float] = None,
    ) -> Dict[str, Any]:
        return await self._request("GET", "/v1/audit", params=self._audit_params(stack, secret, hours))

    async def rotate_cache(self, stack: str) -> Any:
        return await self._request("DELETE", f"/v1/cache/{quote(stack, safe='')}")

    async def sync(
        self,
        stack: str,
        env_content: str,
        *,
        out_path: Optional[str] = None,
        bypass_cache: Optional[bool] = None,
    ) -> Any:
        return await self._request(
            "POST",
            "/v1/materialize/env",
            json_body=self._sync_payload(stack, env_content, out_path, bypass_cache),
        )

    async def rotate(self, item_id: str) -> Any:
        return await self._request("POST", f"/v1/rotate/{quote(item_id, safe='')}")

    async def provision(
        self,
        *,
        vault: str,
        item: str,
        fields: Mapping[str, Mapping[str, Any]],
        category: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/v1/provision",
            json_body=self._provision_payload(vault, item, category, fields),
        )
