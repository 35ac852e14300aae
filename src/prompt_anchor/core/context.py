"""Correlation context for labeling and suggestion requests.

Every scheduled request runs inside a correlation scope so that log lines
emitted by the scheduler, the cache and the normalizer for one logical
request can be tied together.

Usage:
    from prompt_anchor.core.context import (
        sync_request_context,
        get_correlation_id,
        generate_correlation_id,
    )

    with sync_request_context(origin="suggestions") as ctx:
        print(ctx.correlation_id)  # e.g., "req_a1b2c3d4e5f6"
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

__all__ = [
    # Context variables (for advanced use)
    "correlation_id_var",
    "origin_var",
    "start_time_var",
    # Dataclasses
    "RequestContext",
    # ID generation
    "generate_correlation_id",
    # Context managers
    "sync_request_context",
    # Accessors
    "get_correlation_id",
    "get_origin",
    "get_start_time",
    "get_current_context",
]

# -----------------------------------------------------------------------------
# Context Variables
# -----------------------------------------------------------------------------

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
"""Correlation ID shared by every log line of one logical request."""

origin_var: ContextVar[str] = ContextVar("origin", default="-")
"""Which flow started the request (e.g. "labeling", "suggestions", "cli")."""

start_time_var: ContextVar[float] = ContextVar("start_time", default=0.0)
"""Request start time as Unix timestamp."""


# -----------------------------------------------------------------------------
# Correlation ID Generation
# -----------------------------------------------------------------------------


def generate_correlation_id(prefix: str = "req") -> str:
    """Generate a unique correlation ID with optional prefix.

    Format: {prefix}_{12_hex_chars}
    Example: "req_a1b2c3d4e5f6"
    """
    return f"{prefix}_{secrets.token_hex(6)}"


# -----------------------------------------------------------------------------
# Request Context
# -----------------------------------------------------------------------------


@dataclass
class RequestContext:
    """Snapshot of the current request context.

    Attributes:
        correlation_id: Unique request identifier
        origin: Flow that opened the context
        start_time: Request start timestamp
    """

    correlation_id: str = ""
    origin: str = "-"
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the context was opened."""
        if self.start_time <= 0:
            return 0.0
        return (time.time() - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "origin": self.origin,
            "start_time": self.start_time,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@contextmanager
def sync_request_context(
    *,
    correlation_id: Optional[str] = None,
    origin: Optional[str] = None,
) -> Generator[RequestContext, None, None]:
    """Set the correlation context for the duration of the with block.

    Context variables are copied into tasks created inside the block, so
    work scheduled from here keeps the same correlation ID.

    Args:
        correlation_id: Request ID (auto-generated if None)
        origin: Flow name recorded on log lines

    Yields:
        RequestContext snapshot
    """
    corr_id = correlation_id or generate_correlation_id()
    source = origin or "-"
    start = time.time()

    token_corr = correlation_id_var.set(corr_id)
    token_origin = origin_var.set(source)
    token_start = start_time_var.set(start)

    try:
        yield RequestContext(correlation_id=corr_id, origin=source, start_time=start)
    finally:
        correlation_id_var.reset(token_corr)
        origin_var.reset(token_origin)
        start_time_var.reset(token_start)


# -----------------------------------------------------------------------------
# Context Accessors
# -----------------------------------------------------------------------------


def get_correlation_id() -> str:
    """Current correlation ID or empty string if not set."""
    return correlation_id_var.get()


def get_origin() -> str:
    return origin_var.get()


def get_start_time() -> float:
    return start_time_var.get()


def get_current_context() -> RequestContext:
    """Get a snapshot of all current context values."""
    return RequestContext(
        correlation_id=get_correlation_id(),
        origin=get_origin(),
        start_time=get_start_time(),
    )
