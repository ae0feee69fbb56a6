import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Tuple

from herald_mcp.core.config import DEFAULT_TOOL_RESPONSE_MAX_CHARS
from herald_mcp.sdk.client import AsyncHeraldClient

from .definitions import (
    TOOL_AUDIT,
    TOOL_DESCRIPTIONS,
    TOOL_HEALTH,
    TOOL_INVENTORY,
    TOOL_PROVISION_SECRET,
    TOOL_ROTATE,
    TOOL_ROTATE_CACHE,
    TOOL_SYNC,
    AuditArguments,
    HealthArguments,
    InventoryArguments,
    ProvisionSecretArguments,
    RotateArguments,
    RotateCacheArguments,
    SyncArguments,
    tool_annotations,
)
from .registry import ToolRegistry, ToolResult
from .utils import safe_json_dumps, truncate_tool_text

logger = logging.getLogger("HeraldMCP.mcp.handlers")

_PROVIDER_TYPE_LABELS = {
    "connect_server": "Connect (local, no rate limits)",
    "service_account": "Service Account (cloud API, rate-limited)",
}
_PROVISIONER_LABELS = {
    "connect": "Connect (local REST API, no rate limits)",
    "sdk": "SDK service account (cloud API, rate-limited)",
}
_PROVISIONER_NOTES = {
    "connect": (
        "Provisioned via Connect server (local REST API, no rate limits).\n"
        "Upsert limitation: if the item already existed, only new fields were added; "
        "existing field values were NOT updated. To update an existing field value, "
        "delete the item in 1Password and re-provision."
    ),
    "sdk": (
        "Provisioned via SDK service account (cloud API). Upsert limitation applies "
        "equally: existing field values are never overwritten."
    ),
}


def _provider_line(provider: Dict[str, Any]) -> str:
    provider_type = provider.get("type")
    type_label = _PROVIDER_TYPE_LABELS.get(provider_type, provider_type or "unknown")
    line = f"  {provider.get('name', '?')} [{type_label}] - {provider.get('status', 'unknown')}"
    if provider.get("error"):
        line += f": {provider['error']}"
    if provider.get("latency_ms") is not None:
        line += f" ({provider['latency_ms']}ms)"
    if provider.get("rate_limited_since"):
        line += f" (rate-limited since {provider['rate_limited_since']})"
    return line


def format_health_summary(health: Dict[str, Any]) -> str:
    providers = health.get("providers") or []
    lines = [
        f"Status: {health.get('status', 'unknown')}",
        f"Uptime: {health.get('uptime_seconds', '?')}s",
        f"Provisioner: {_PROVISIONER_LABELS.get(health.get('provisioner'), 'unavailable')}",
        "",
        "Read providers (priority order):",
    ]
    lines.extend(_provider_line(provider) for provider in providers if isinstance(provider, dict))
    return "\n".join(lines)


def _connect_provider(health: Dict[str, Any]) -> Any:
    for provider in health.get("providers") or []:
        if isinstance(provider, dict) and provider.get("type") == "connect_server" and provider.get("status") == "ok":
            return provider
    return None


class HeraldToolHandlers:
    """Tool handlers backed by one shared async Herald client."""

    def __init__(self, client: AsyncHeraldClient, max_chars: int = DEFAULT_TOOL_RESPONSE_MAX_CHARS):
        self.client = client
        self.max_chars = max_chars

    def _text(self, text: str, tool_name: str) -> ToolResult:
        return ToolResult.text(truncate_tool_text(text, tool_name, self.max_chars))

    async def _with_health(self, operation: Awaitable[Any], tool_name: str) -> Tuple[Dict[str, Any], Any]:
        """
        Run a backend operation alongside a health lookup used only for hints.

        Both calls are awaited to completion. A failed health lookup degrades
        to an empty report; only the operation's own failure is raised.
        """
        health, data = await asyncio.gather(self.client.health(), operation, return_exceptions=True)
        if isinstance(data, BaseException):
            raise data
        if isinstance(health, BaseException):
            logger.warning("Health lookup for %s failed; using generic hints: %s", tool_name, health)
            health = {}
        elif not isinstance(health, dict):
            health = {}
        return health, data

    async def health(self, args: HealthArguments) -> ToolResult:
        data = await self.client.health()
        summary = format_health_summary(data)
        return self._text(f"{summary}\n\n{safe_json_dumps(data)}", TOOL_HEALTH)

    async def inventory(self, args: InventoryArguments) -> ToolResult:
        data = await self.client.inventory()
        return self._text(safe_json_dumps(data), TOOL_INVENTORY)

    async def audit(self, args: AuditArguments) -> ToolResult:
        data = await self.client.audit(stack=args.stack, secret=args.secret, hours=args.hours)
        return self._text(safe_json_dumps(data), TOOL_AUDIT)

    async def rotate_cache(self, args: RotateCacheArguments) -> ToolResult:
        await self.client.rotate_cache(args.stack)
        return ToolResult.text(f"Cache cleared for stack: {args.stack}")

    async def sync(self, args: SyncArguments) -> ToolResult:
        data = await self.client.sync(
            args.stack,
            args.env_content,
            out_path=args.out_path,
            bypass_cache=args.bypass_cache,
        )
        return self._text(safe_json_dumps(data), TOOL_SYNC)

    async def rotate(self, args: RotateArguments) -> ToolResult:
        health, data = await self._with_health(self.client.rotate(args.item_id), TOOL_ROTATE)
        connect = _connect_provider(health)
        if connect is not None:
            hint = (
                "To update the secret value: use the 1Password Connect REST API "
                f"({connect.get('name')}) or the 1Password web UI, then run herald_rotate again."
            )
        else:
            hint = "To update the secret value: use the 1Password web UI or CLI, then run herald_rotate again."
        lines = [
            "Rotation triggered: cache invalidated and affected stacks redeployed.",
            hint,
            "",
            safe_json_dumps(data),
        ]
        return self._text("\n".join(lines), TOOL_ROTATE)

    async def provision_secret(self, args: ProvisionSecretArguments) -> ToolResult:
        fields = {name: spec.model_dump(exclude_none=True) for name, spec in args.fields.items()}
        health, data = await self._with_health(
            self.client.provision(
                vault=args.vault,
                item=args.item,
                category=args.category,
                fields=fields,
            ),
            TOOL_PROVISION_SECRET,
        )
        provisioner = health.get("provisioner") or "unknown"
        refs = data.get("refs") or {}
        lines: List[str] = [
            f'Created/updated item "{args.item}" in vault "{args.vault}"',
            f"Item ID: {data.get('item_id')}",
            "",
            "op:// references (use these in extra.env):",
        ]
        lines.extend(f"  {field_name}={ref}" for field_name, ref in refs.items())
        lines.extend(["", _PROVISIONER_NOTES.get(provisioner, f"Provisioner: {provisioner}")])
        return self._text("\n".join(lines), TOOL_PROVISION_SECRET)

    def register_all(self, registry: ToolRegistry) -> ToolRegistry:
        bindings = (
            (TOOL_HEALTH, HealthArguments, self.health),
            (TOOL_INVENTORY, InventoryArguments, self.inventory),
            (TOOL_AUDIT, AuditArguments, self.audit),
            (TOOL_ROTATE_CACHE, RotateCacheArguments, self.rotate_cache),
            (TOOL_SYNC, SyncArguments, self.sync),
            (TOOL_ROTATE, RotateArguments, self.rotate),
            (TOOL_PROVISION_SECRET, ProvisionSecretArguments, self.provision_secret),
        )
        for name, input_model, handler in bindings:
            registry.register(
                name,
                TOOL_DESCRIPTIONS[name],
                input_model,
                handler,
                annotations=tool_annotations(name),
            )
        logger.debug("Registered %d Herald tools", len(bindings))
        return registry


def build_registry(client: AsyncHeraldClient, max_chars: int = DEFAULT_TOOL_RESPONSE_MAX_CHARS) -> ToolRegistry:
    return HeraldToolHandlers(client, max_chars=max_chars).register_all(ToolRegistry())
