"""
Single-slot request lifecycle manager.

Owns exactly one request slot. Every call to
:meth:`RequestLifecycleManager.schedule_request` supersedes whatever occupies
the slot, whatever its key, so only the most recently scheduled operation can
ever resolve. Superseded operations always settle with
:class:`~prompt_anchor.core.concurrency.CancellationError`.

State machine::

    IDLE -> DEBOUNCING -> IN_FLIGHT -> {resolved | cancelled | failed} -> IDLE

Example:
    manager = RequestLifecycleManager(debounce_ms=150)

    async def work(token):
        return await fetcher(payload, token)

    try:
        result = await manager.schedule_request("quote|ctx", work)
    except CancellationError:
        pass  # superseded by a newer request
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from prompt_anchor.core.concurrency import CancellationError, CancellationToken
from prompt_anchor.core.context import (
    generate_correlation_id,
    get_correlation_id,
    sync_request_context,
)
from prompt_anchor.core.resilience import TimeoutException

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Default trailing-edge debounce window
DEFAULT_DEBOUNCE_MS: float = 150.0

#: (exclusive upper text length, debounce) pairs for smart_debounce_ms
SMART_DEBOUNCE_STEPS: Tuple[Tuple[int, float], ...] = (
    (100, 50.0),
    (500, 150.0),
    (2000, 300.0),
)
SMART_DEBOUNCE_MAX_MS: float = 450.0

Work = Callable[[CancellationToken], Awaitable[Any]]
StartCallback = Callable[[], None]


def smart_debounce_ms(text: Optional[str]) -> float:
    """Debounce window scaled to the length of ``text``.

    Short snippets go out almost at once; long buffers wait longer so fewer
    requests are made while the user is still typing.
    """
    length = len(text) if text else 0
    for limit, delay in SMART_DEBOUNCE_STEPS:
        if length < limit:
            return delay
    return SMART_DEBOUNCE_MAX_MS


class RequestState(str, Enum):
    """Lifecycle state of the manager's single slot."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"


@dataclass
class RequestSlot:
    """The one live request a manager holds.

    Attributes:
        dedup_key: Key identifying the logical request
        request_id: Correlation ID the request logs under
        token: Cancellation token handed to the work
        work: Coroutine factory invoked when the debounce timer fires
        future: Outcome handed back to the caller
        timer: Pending debounce timer, None once fired or cancelled
        task: Task running the work, None until in flight
        state: DEBOUNCING or IN_FLIGHT
        on_start: Called once when the debounce elapses, before the work runs
    """

    dedup_key: str
    request_id: str
    token: CancellationToken
    work: Work
    future: "asyncio.Future[Any]"
    on_start: Optional[StartCallback] = None
    timer: Optional[asyncio.TimerHandle] = None
    task: Optional["asyncio.Task[None]"] = None
    state: RequestState = RequestState.DEBOUNCING


class RequestLifecycleManager:
    """Debounced, cancellable, single-flight scheduler.

    Args:
        debounce_ms: Quiet period before the latest scheduled work starts.
        timeout_ms: Optional budget for the work once in flight. Expiry
            rejects the request with TimeoutException. None disables it.
    """

    def __init__(
        self,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        timeout_ms: Optional[float] = None,
    ):
        if debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")
        if timeout_ms is not None and timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0 when set")
        self.debounce_ms = debounce_ms
        self.timeout_ms = timeout_ms
        self._slot: Optional[RequestSlot] = None
        self._disposed = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> RequestState:
        if self._slot is None:
            return RequestState.IDLE
        return self._slot.state

    @property
    def current_key(self) -> Optional[str]:
        return self._slot.dedup_key if self._slot is not None else None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def is_request_in_flight(self, dedup_key: str) -> bool:
        """True only while work for ``dedup_key`` is executing (not debouncing)."""
        slot = self._slot
        return (
            slot is not None
            and slot.dedup_key == dedup_key
            and slot.state is RequestState.IN_FLIGHT
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_request(
        self,
        dedup_key: str,
        work: Work,
        *,
        debounce_ms: Optional[float] = None,
        on_start: Optional[StartCallback] = None,
    ) -> "asyncio.Future[Any]":
        """Schedule ``work`` after the debounce window, superseding the slot.

        Must be called from a running event loop.

        Args:
            dedup_key: Key identifying this logical request.
            work: Async callable receiving the request's CancellationToken.
            debounce_ms: Window for this request only; 0 starts it on the
                next loop iteration. Defaults to the manager's window.
            on_start: Called when the request leaves the debounce window and
                goes in flight. Never called for a request superseded first.
                An exception it raises rejects the request.

        Returns:
            Future resolving to the work's result, or rejecting with
            CancellationError, TimeoutException, or the work's own error.

        Raises:
            RuntimeError: If the manager has been disposed.
        """
        if self._disposed:
            raise RuntimeError("RequestLifecycleManager has been disposed")
        if debounce_ms is None:
            debounce_ms = self.debounce_ms
        elif debounce_ms < 0:
            raise ValueError("debounce_ms must be >= 0")

        loop = asyncio.get_running_loop()
        self.cancel_current_request(reason="Superseded by a newer request")

        future: "asyncio.Future[Any]" = loop.create_future()
        slot = RequestSlot(
            dedup_key=dedup_key,
            request_id=get_correlation_id() or generate_correlation_id(),
            token=CancellationToken(),
            work=work,
            future=future,
            on_start=on_start,
        )
        future.add_done_callback(lambda fut: self._on_future_done(slot, fut))

        # The timer callback (and the task it spawns) run in a copy of the
        # current context, so the correlation ID follows the request.
        with sync_request_context(correlation_id=slot.request_id):
            slot.timer = loop.call_later(debounce_ms / 1000.0, self._fire, slot)

        self._slot = slot
        logger.debug("Scheduled request %s (debounce %.0fms)", dedup_key, debounce_ms)
        return future

    def cancel_current_request(self, reason: str = "Request cancelled") -> bool:
        """Cancel whatever occupies the slot. Safe to call at any time.

        Returns:
            True if a pending request was cancelled, False if the slot was empty.
        """
        slot = self._slot
        if slot is None:
            return False

        self._slot = None
        if slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None
        slot.token.cancel(reason)
        if slot.task is not None and not slot.task.done():
            slot.task.cancel()
        self._reject(slot, CancellationError(reason))
        logger.debug("Cancelled request %s (%s)", slot.dedup_key, reason)
        return True

    def dispose(self) -> None:
        """Cancel pending work and refuse further scheduling."""
        self.cancel_current_request(reason="Manager disposed")
        self._disposed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fire(self, slot: RequestSlot) -> None:
        slot.timer = None
        if slot.token.is_cancelled:
            self._reject(slot, CancellationError("Request cancelled during debounce"))
            self._clear(slot)
            return

        slot.state = RequestState.IN_FLIGHT
        slot.task = slot.future.get_loop().create_task(self._run(slot))

    async def _execute(self, slot: RequestSlot) -> Any:
        if slot.on_start is not None:
            slot.on_start()
        if self.timeout_ms is None:
            return await slot.work(slot.token)

        async def guarded() -> Tuple[Any, Optional[BaseException]]:
            # A TimeoutError raised by the work itself must not be mistaken
            # for the manager's own budget expiring.
            try:
                return await slot.work(slot.token), None
            except (TimeoutError, asyncio.TimeoutError) as exc:
                return None, exc

        budget = self.timeout_ms / 1000.0
        try:
            result, error = await asyncio.wait_for(guarded(), timeout=budget)
        except asyncio.TimeoutError as exc:
            raise TimeoutException(
                f"Request {slot.dedup_key!r} timed out after {self.timeout_ms:.0f}ms",
                timeout_seconds=budget,
                operation=slot.dedup_key,
            ) from exc
        if error is not None:
            raise error
        return result

    async def _run(self, slot: RequestSlot) -> None:
        try:
            result = await self._execute(slot)
        except asyncio.CancelledError:
            self._reject(slot, CancellationError("Request aborted"))
            self._clear(slot)
            raise
        except CancellationError as exc:
            self._reject(slot, exc)
            self._clear(slot)
        except Exception as exc:
            logger.debug("Request %s failed: %s", slot.dedup_key, exc)
            self._reject(slot, exc)
            self._clear(slot)
        else:
            if slot.token.is_cancelled:
                self._reject(slot, CancellationError("Result discarded: request cancelled"))
            elif not slot.future.done():
                slot.future.set_result(result)
            self._clear(slot)

    def _reject(self, slot: RequestSlot, exc: BaseException) -> None:
        if not slot.future.done():
            slot.future.set_exception(exc)

    def _clear(self, slot: RequestSlot) -> None:
        if self._slot is slot:
            self._slot = None

    def _on_future_done(self, slot: RequestSlot, future: "asyncio.Future[Any]") -> None:
        if future.cancelled():
            # The caller stopped waiting; tear down the work it was waiting on.
            if self._slot is slot:
                self.cancel_current_request(reason="Caller cancelled the request")
            return
        # Mark the outcome retrieved so superseded futures nobody awaits do
        # not log "exception was never retrieved".
        future.exception()


__all__ = [
    "DEFAULT_DEBOUNCE_MS",
    "SMART_DEBOUNCE_STEPS",
    "SMART_DEBOUNCE_MAX_MS",
    "smart_debounce_ms",
    "RequestState",
    "RequestSlot",
    "RequestLifecycleManager",
]
