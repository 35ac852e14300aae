"""
Transport failure types, timeouts and retry helpers for fetchers.

The engine never performs network I/O itself. Labelers and suggestion
fetchers injected into the orchestration layer raise :class:`TransportError`
(or subclasses) on failure and may use :func:`retry_with_backoff` to retry
transient errors. Every backoff sleep observes the request's
:class:`CancellationToken`, so a superseded request stops retrying at once.

Example usage:

    from prompt_anchor.core.resilience import TransportError, retry_with_backoff

    async def fetch_suggestions(payload, token):
        return await retry_with_backoff(
            lambda: client.post("/suggestions", payload),
            token=token,
            retryable_exceptions=[TransportError],
        )
"""

from typing import Awaitable, Callable, List, Optional, Type, TypeVar
import logging
import random

from prompt_anchor.core.concurrency import (
    CancellationError,
    CancellationToken,
    cancellable_sleep,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Retry Constants
# ---------------------------------------------------------------------------

#: Default retry parameters for fetchers
DEFAULT_MAX_RETRIES: int = 2
DEFAULT_BASE_DELAY: float = 0.5
DEFAULT_MAX_DELAY: float = 8.0


T = TypeVar("T")


# ---------------------------------------------------------------------------
# Transport Errors
# ---------------------------------------------------------------------------


class TransportError(Exception):
    """A network or service failure reported by a fetcher.

    Attributes:
        status: Optional HTTP-like status code.
        retryable: Whether retrying the same request may succeed.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class TimeoutException(TransportError):
    """Operation timed out.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
        operation: Name of the operation that timed out.
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, retryable=True)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


# ---------------------------------------------------------------------------
# Retry with Backoff
# ---------------------------------------------------------------------------


def compute_backoff_delay(
    attempt: int,
    *,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is zero based)."""
    delay = min(base_delay * (exponential_base**attempt), max_delay)
    if jitter:
        delay = delay * (0.5 + random.random())
    return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    token: Optional[CancellationToken] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[List[Type[Exception]]] = None,
) -> T:
    """Retry an async callable with exponential backoff.

    Args:
        func: Zero-argument coroutine factory (use a lambda for arguments).
        token: Cancellation token checked before each attempt and observed
            during every backoff sleep.
        max_retries: Maximum number of retry attempts.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        exponential_base: Multiplier for each retry.
        jitter: Add randomness to delay.
        retryable_exceptions: Exceptions to retry on (default: TransportError).
            A TransportError with ``retryable=False`` is never retried.

    Returns:
        Result from the callable on success.

    Raises:
        CancellationError: If the token is cancelled before or between attempts.
        Exception: The last exception if all retries are exhausted.
    """
    retryable = tuple(retryable_exceptions or [TransportError])

    for attempt in range(max_retries + 1):
        if token is not None:
            await token.check()
        try:
            return await func()
        except CancellationError:
            raise
        except retryable as e:
            if isinstance(e, TransportError) and not e.retryable:
                raise
            if attempt == max_retries:
                raise

            delay = compute_backoff_delay(
                attempt,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential_base=exponential_base,
                jitter=jitter,
            )
            logger.debug(
                "Attempt %d failed (%s), retrying in %.2fs", attempt + 1, e, delay
            )
            await cancellable_sleep(delay, token)

    raise RuntimeError("retry_with_backoff: unexpected state")


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_DELAY",
    "TransportError",
    "TimeoutException",
    "compute_backoff_delay",
    "retry_with_backoff",
]
