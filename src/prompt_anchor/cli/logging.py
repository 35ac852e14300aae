"""Structured logging hooks for CLI commands.

Every command runs inside a correlation context so its log lines and its
JSON envelope share one request ID.
"""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from prompt_anchor.core.context import (
    generate_correlation_id,
    get_correlation_id,
    sync_request_context,
)

__all__ = [
    "generate_request_id",
    "get_request_id",
    "cli_command",
]

T = TypeVar("T")

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    """Generate a unique request ID for CLI command tracking."""
    return generate_correlation_id(prefix="cli")


def get_request_id() -> str:
    """Get the current request ID, or empty string outside a command."""
    return get_correlation_id()


def cli_command(
    command_name: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for CLI commands with request correlation.

    Automatically:
    - Generates request ID for correlation
    - Logs command start/end with duration

    Example:
        >>> @cli_command("normalize")
        ... def normalize_cmd(text_file: str):
        ...     ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = command_name or func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with sync_request_context(
                correlation_id=generate_request_id(), origin=f"cli.{name}"
            ):
                start = time.perf_counter()
                success = True
                logger.debug("CLI command started: %s", name)
                try:
                    return func(*args, **kwargs)
                except SystemExit as e:
                    success = e.code in (None, 0)
                    raise
                except Exception:
                    success = False
                    raise
                finally:
                    duration_ms = (time.perf_counter() - start) * 1000
                    logger.debug(
                        "CLI command completed: %s",
                        name,
                        extra={"success": success, "duration_ms": round(duration_ms, 2)},
                    )

        return wrapper

    return decorator
