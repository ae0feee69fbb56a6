"""
Herald MCP CLI.

Usage:
    herald-mcp [serve] [--transport stdio|sse] [--host H] [--port P]
    herald-mcp doctor [--timeout-seconds S]
    python -m herald_mcp --help

Commands:
    serve     Run the MCP server on the configured transport (default).
    doctor    Check that the Herald backend is reachable and healthy.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from herald_mcp.core.config import TRANSPORT_MODES, ConfigurationError, HeraldMcpConfig
from herald_mcp.mcp.handlers import format_health_summary
from herald_mcp.mcp.transport import select_transport
from herald_mcp.sdk.client import HeraldClient
from herald_mcp.sdk.errors import GatewayError
from herald_mcp.version import __version__

logger = logging.getLogger("HeraldMCP")

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    # stdout belongs to the stdio protocol; logs go to stderr.
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(level=level, format=_LOG_FORMAT, handlers=handlers, force=True)


# ─────────────────────────────────────────────────────────────────────────────
# serve command
# ─────────────────────────────────────────────────────────────────────────────

def cmd_serve(config: HeraldMcpConfig) -> int:
    transport = select_transport(config)
    logger.info(
        "Starting Herald MCP %s (transport=%s, backend=%s)",
        __version__,
        config.transport.mode,
        config.backend.url,
    )
    try:
        asyncio.run(transport.serve())
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# doctor command
# ─────────────────────────────────────────────────────────────────────────────

def cmd_doctor(config: HeraldMcpConfig, args: argparse.Namespace) -> int:
    """
    Check backend reachability and health.

    Exit codes:
      0 = backend reachable and reporting ok
      1 = unreachable, rejected the request, or degraded
    """
    timeout = max(0.1, float(args.timeout_seconds or config.backend.timeout_sec))
    print("\nHerald MCP Doctor")
    print("=" * 50)
    print(f"Backend URL: {config.backend.url}")
    print(f"API token: {'set' if config.backend.token else 'not set'}")
    print(f"Transport: {config.transport.mode}")

    with HeraldClient(config.backend.url, token=config.backend.token, timeout=timeout) as client:
        try:
            health = client.health()
        except GatewayError as exc:
            print(f"Health check: FAIL ({exc})")
            print()
            return 1

    if not isinstance(health, dict):
        print(f"Health check: FAIL (unexpected response: {health!r})")
        print()
        return 1

    healthy = health.get("status") == "ok"
    print(f"Health check: {'PASS' if healthy else 'DEGRADED'}")
    print()
    print(format_health_summary(health))
    print()
    return 0 if healthy else 1


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def _add_serve_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--transport",
        choices=TRANSPORT_MODES,
        default=None,
        help="Transport binding (default: MCP_TRANSPORT or stdio).",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="SSE listen host (default: MCP_HOST or 0.0.0.0).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="SSE listen port (default: MCP_PORT or 8000).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="herald-mcp",
        description="Herald MCP server: exposes the Herald secrets gateway as MCP tools.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  herald-mcp\n"
               "  herald-mcp serve --transport sse --port 8000\n"
               "  MCP_TRANSPORT=sse herald-mcp\n"
               "  herald-mcp doctor\n",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_serve_arguments(parser)
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser(
        "serve",
        help="Run the MCP server (default command).",
    )
    _add_serve_arguments(serve)

    doctor = subparsers.add_parser(
        "doctor",
        help="Check Herald backend reachability and health.",
        description=(
            "Calls the Herald /v1/health endpoint with the configured URL\n"
            "and token and prints a provider summary."
        ),
    )
    doctor.add_argument(
        "--timeout-seconds",
        type=float,
        default=None,
        help="HTTP timeout for the health check (default: HERALD_TIMEOUT_SEC).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = HeraldMcpConfig.from_env()
        if args.command in (None, "serve"):
            config = config.with_overrides(mode=args.transport, host=args.host, port=args.port)
    except ConfigurationError as exc:
        configure_logging()
        logger.error("%s", exc)
        return 2

    configure_logging(config.log.level, config.log.file)

    if args.command == "doctor":
        return cmd_doctor(config, args)
    try:
        return cmd_serve(config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
