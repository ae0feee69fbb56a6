"""
Herald gateway client exceptions.
"""

from __future__ import annotations

from typing import Any, Optional


class GatewayError(RuntimeError):
    """Raised when a Herald API call fails or returns a non-success status."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        body: Optional[Any] = None,
    ) -> None:
        self.status_code = status_code
        self.path = path
        self.body = body
        status_hint = f" {status_code}" if status_code is not None else ""
        path_hint = f" [{path}]" if path else ""
        super().__init__(f"Herald API error:{status_hint} {detail}{path_hint}")


class GatewayConnectionError(GatewayError):
    """Raised when the client cannot reach the Herald service at all."""
