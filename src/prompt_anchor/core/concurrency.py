"""
Cooperative cancellation primitives.

A :class:`CancellationToken` is handed to every unit of scheduled work.
Work polls it (``await token.check()``) or sleeps through
:func:`cancellable_sleep`, so a superseded request stops at its next
suspension point instead of running to completion.

Example:
    from prompt_anchor.core.concurrency import CancellationToken, cancellable_sleep

    token = CancellationToken()

    async def fetch(token):
        for attempt in range(3):
            await token.check()
            ...
            await cancellable_sleep(0.5, token)
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CancellationError(Exception):
    """A scheduled operation was superseded, cancelled or aborted.

    Distinct from ``asyncio.CancelledError``: this is a normal exception that
    settles futures handed out by the request lifecycle manager, and callers
    are expected to treat it as a silent no-op.

    Attributes:
        reason: Short description of why the operation was cancelled.
    """

    def __init__(self, reason: str = "Request cancelled"):
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """Token for cooperative cancellation of async operations.

    Allows multiple operations to check for cancellation requests
    without relying solely on asyncio.CancelledError.

    Example:
        >>> token = CancellationToken()
        >>>
        >>> async def worker():
        ...     while not token.is_cancelled:
        ...         await do_work()
        ...         await token.check()  # Raises if cancelled
        ...
        >>> # Later, from another task:
        >>> token.cancel("superseded")
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None
        self._cancel_event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Request cancelled") -> None:
        """Request cancellation. Repeated calls keep the first reason."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        self._cancel_event.set()

    async def check(self) -> None:
        """Check for cancellation and raise if requested.

        Raises:
            CancellationError: If cancellation was requested
        """
        if self._cancelled:
            raise CancellationError(self._reason or "Request cancelled")

    async def wait_for_cancel(self, timeout: Optional[float] = None) -> bool:
        """Wait for cancellation to be requested.

        Args:
            timeout: Maximum time to wait (None for indefinite)

        Returns:
            True if cancelled, False if timeout reached
        """
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False


async def cancellable_sleep(
    delay: float, token: Optional[CancellationToken] = None
) -> None:
    """Sleep for ``delay`` seconds unless ``token`` is cancelled first.

    Raises:
        CancellationError: If the token is (or becomes) cancelled.
    """
    if token is None:
        await asyncio.sleep(delay)
        return

    await token.check()
    if await token.wait_for_cancel(timeout=delay):
        logger.debug("Sleep interrupted by cancellation: %s", token.reason)
        raise CancellationError(token.reason or "Request cancelled")


__all__ = [
    "CancellationError",
    "CancellationToken",
    "cancellable_sleep",
]
