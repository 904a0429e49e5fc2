# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Rate-limited scheduler for outbound calls.

One coordinator task drains a FIFO deque of queue entries. An entry is
admitted when all of the following hold:

- fewer than ``max_concurrent`` operations are running
- the reservoir holds a token (or no reservoir is configured)
- ``min_interval_ms`` has passed since the previous admission

Otherwise the coordinator sleeps until the earliest moment one of these can
change: an operation finishing, a new submission, the interval elapsing or
the next reservoir refill. All state is mutated on the event loop between
awaits, so no locks are needed around the queue or counters.
"""

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from typing_extensions import Self

from ..exceptions import QueueCancelledError, SchedulerClosedError
from ..observability.constants import (
    ACTIVE_CALLS,
    CALLS_CANCELLED_TOTAL,
    CALLS_COMPLETED_TOTAL,
    CALLS_FAILED_TOTAL,
    CALLS_SCHEDULED_TOTAL,
    QUEUE_DEPTH,
    QUEUE_HIGH_WATER_TOTAL,
    QUEUE_WAIT_SECONDS,
)
from ..observability.metrics import MetricsSnapshot, SchedulerMetrics
from ..observability.protocols import MetricsCollectorProtocol
from ..types.queue import EntryState, QueueEntry
from .config import SchedulerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

MS_PER_SECOND = 1_000


class RateLimitedScheduler:
    """
    Bounded-concurrency, minimum-interval, quota-reservoir admission queue.

    The scheduler never raises for capacity reasons, it only defers. The
    result or exception of each operation is handed back to its caller
    unchanged.

    Example:
        >>> scheduler = RateLimitedScheduler(get_preset("github_api"), name="github_api")
        >>> async with scheduler:
        ...     repo = await scheduler.schedule(lambda: gh.repos.get(...), "repos.get")
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        name: str = "default",
        metrics_collector: MetricsCollectorProtocol | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initialize the scheduler.

        The coordinator task is started lazily by the first ``schedule()``
        call, so a scheduler can be constructed outside a running loop.

        Args:
            config: Admission rules (defaults to one call at a time, no limits)
            name: Label used in logs, errors and metric labels
            metrics_collector: Optional process-wide metrics sink
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.config = config or SchedulerConfig()
        self.name = name
        self._metrics_collector = metrics_collector
        self._clock = clock or time.monotonic
        self._labels = {"scheduler": name}

        self._queue: deque[QueueEntry] = deque()
        self._metrics = SchedulerMetrics()
        self._coordinator: asyncio.Task[None] | None = None
        self._active_tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self._above_high_water = False

        # Loop-bound primitives, replaced by _bind_loop() for each new loop
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup = asyncio.Event()
        self._shutdown_lock = asyncio.Lock()

        # Admission bookkeeping
        self._last_dispatch: float | None = None
        self._tokens: int | None = self.config.reservoir
        self._last_refill = self._clock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def schedule(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "anonymous",
    ) -> T:
        """
        Submit ``operation`` and wait for its result.

        Args:
            operation: Zero-argument async callable
            operation_name: Label used in logs

        Returns:
            The operation's result

        Raises:
            SchedulerClosedError: If the scheduler has been shut down
            QueueCancelledError: If the entry was discarded before admission
            Exception: Whatever the operation raised, unchanged
        """
        if self._closed:
            raise SchedulerClosedError(
                f"Scheduler {self.name!r} is shut down", scheduler_name=self.name
            )

        loop = self._bind_loop()
        entry = QueueEntry(
            operation=operation,
            future=loop.create_future(),
            operation_name=operation_name,
        )
        self._queue.append(entry)
        self._metrics.queued_requests += 1
        self._on_queue_change()

        self._ensure_coordinator()
        self._wakeup.set()

        try:
            return await entry.future  # type: ignore[no-any-return]
        except asyncio.CancelledError:
            # A running operation is not preempted; a queued one is dropped
            if entry.state is EntryState.QUEUED:
                self._discard(entry)
                logger.debug(
                    f"{operation_name} cancelled by caller while queued "
                    f"on {self.name}",
                    extra={"operation_name": operation_name, "entry_id": entry.id},
                )
            raise

    def clear_queue(self) -> int:
        """
        Reject every queued entry with QueueCancelledError.

        Running operations are unaffected and the scheduler keeps accepting
        new work.

        Returns:
            Number of entries rejected
        """
        rejected = self._reject_queued("queue cleared")
        if rejected:
            logger.info(f"Cleared {rejected} queued calls from {self.name}")
        return rejected

    async def shutdown(self, drain_timeout: float | None = None) -> None:
        """
        Stop admitting, drain running operations, then reject queued entries.

        Operations still running when the drain timeout expires are
        cancelled and their callers receive QueueCancelledError. Calling
        shutdown more than once is a no-op.

        Args:
            drain_timeout: Seconds to wait for running operations (defaults
                to ``config.drain_timeout_ms``; None in both means no bound)
        """
        self._bind_loop()
        async with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True

            if self._coordinator and not self._coordinator.done():
                self._coordinator.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._coordinator
            self._coordinator = None

            if drain_timeout is None and self.config.drain_timeout_ms is not None:
                drain_timeout = self.config.drain_timeout_ms / MS_PER_SECOND

            if self._active_tasks:
                _, pending = await asyncio.wait(
                    set(self._active_tasks), timeout=drain_timeout
                )
                if pending:
                    logger.warning(
                        f"{self.name}: {len(pending)} calls still running after "
                        f"{drain_timeout}s drain timeout, cancelling"
                    )
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)

            rejected = self._reject_queued("scheduler shut down")
            logger.info(
                f"Scheduler {self.name} stopped ({rejected} queued calls rejected)"
            )

    def get_metrics(self) -> MetricsSnapshot:
        """Return a frozen snapshot of the scheduler counters."""
        return self._metrics.snapshot()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def queue_depth(self) -> int:
        return self._metrics.queued_requests

    @property
    def reservoir(self) -> int | None:
        """Tokens currently available, or None when no reservoir is configured."""
        if self._tokens is not None:
            self._refill(self._clock())
        return self._tokens

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Coordinator
    # ------------------------------------------------------------------

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        """
        Attach the scheduler to the running event loop.

        asyncio primitives belong to the loop that first waits on them, so a
        scheduler reused from a new loop (e.g. a second ``asyncio.run()``)
        gets a fresh wakeup event and shutdown lock. Tasks left over from the
        previous loop are forgotten.
        """
        loop = asyncio.get_running_loop()
        if loop is self._loop:
            return loop

        if self._loop is not None:
            logger.debug(f"Scheduler {self.name} rebinding to a new event loop")
            self._coordinator = None
            self._active_tasks = {t for t in self._active_tasks if t.get_loop() is loop}
        self._loop = loop
        self._wakeup = asyncio.Event()
        self._shutdown_lock = asyncio.Lock()
        return loop

    def _ensure_coordinator(self) -> None:
        if self._coordinator is None or self._coordinator.done():
            self._coordinator = asyncio.create_task(
                self._coordinate(), name=f"{self.name}-coordinator"
            )
            self._coordinator.add_done_callback(self._on_coordinator_done)

    def _on_coordinator_done(self, task: asyncio.Task[None]) -> None:
        """Fail queued entries if the coordinator died, so no caller waits forever."""
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(
            f"Coordinator for {self.name} failed: {error}",
            exc_info=error,
            extra={"scheduler": self.name},
        )
        self._reject_queued(f"coordinator failed ({type(error).__name__}: {error})")

    async def _coordinate(self) -> None:
        """Admit queued entries in FIFO order until the scheduler closes."""
        while not self._closed:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            head = self._queue[0]
            if head.future.done():
                # Caller was cancelled; its handler has not run yet
                self._discard(head)
                continue

            delay = self._admission_delay()
            if delay is None:
                # Blocked until an operation finishes or new work arrives
                self._wakeup.clear()
                await self._wakeup.wait()
            elif delay > 0:
                self._wakeup.clear()
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
            else:
                self._admit(self._queue.popleft())

    def _admission_delay(self) -> float | None:
        """
        Seconds until the head entry may be admitted.

        Returns 0 when it may be admitted now, and None when admission
        depends on an event rather than on time passing.
        """
        if self._metrics.running_requests >= self.config.max_concurrent:
            return None

        now = self._clock()
        delay = 0.0

        if self._last_dispatch is not None and self.config.min_interval_ms > 0:
            next_slot = self._last_dispatch + self.config.min_interval_ms / MS_PER_SECOND
            delay = max(delay, next_slot - now)

        if self._tokens is not None:
            self._refill(now)
            if self._tokens < 1:
                if not self.config.refills:
                    return None
                interval = self.config.reservoir_refill_interval_ms / MS_PER_SECOND  # type: ignore[operator]
                delay = max(delay, self._last_refill + interval - now)

        return max(0.0, delay)

    def _refill(self, now: float) -> None:
        """Add the tokens accrued since the last refill, capped at capacity."""
        if not self.config.refills or self._tokens is None:
            return
        interval = self.config.reservoir_refill_interval_ms / MS_PER_SECOND  # type: ignore[operator]
        periods = int((now - self._last_refill) // interval)
        if periods <= 0:
            return
        capacity = self.config.reservoir or 0
        self._tokens = min(
            capacity, self._tokens + periods * self.config.reservoir_refill_amount
        )
        self._last_refill += periods * interval

    def _admit(self, entry: QueueEntry) -> None:
        now = self._clock()
        if self._tokens is not None:
            self._tokens -= 1
        self._last_dispatch = now

        wait_seconds = entry.wait_seconds
        entry.state = EntryState.RUNNING
        entry.started_at = now
        self._metrics.record_admission(
            wait_seconds * MS_PER_SECOND, datetime.now(timezone.utc)
        )
        self._on_queue_change()

        logger.debug(
            f"Admitted {entry.operation_name} on {self.name} after "
            f"{wait_seconds * MS_PER_SECOND:.0f}ms "
            f"({self._metrics.running_requests}/{self.config.max_concurrent} running)",
            extra={
                "operation_name": entry.operation_name,
                "entry_id": entry.id,
                "delay_ms": round(wait_seconds * MS_PER_SECOND),
            },
        )
        if self._metrics_collector is not None:
            self._metrics_collector.inc_counter(CALLS_SCHEDULED_TOTAL, labels=self._labels)
            self._metrics_collector.inc_gauge(ACTIVE_CALLS, labels=self._labels)
            self._metrics_collector.observe_histogram(
                QUEUE_WAIT_SECONDS, wait_seconds, labels=self._labels
            )

        task = asyncio.create_task(
            self._execute(entry), name=f"{self.name}-{entry.id}"
        )
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)

    async def _execute(self, entry: QueueEntry) -> None:
        """Run an admitted entry and settle its future."""
        try:
            result = await entry.operation()
        except asyncio.CancelledError:
            # Only shutdown cancels running operations
            entry.state = EntryState.FAILED
            error = QueueCancelledError(
                f"{entry.operation_name} cancelled by shutdown of {self.name}",
                scheduler_name=self.name,
                entry_id=entry.id,
            )
            self._metrics.record_failure(error)
            if not entry.future.done():
                entry.future.set_exception(error)
            raise
        except Exception as e:
            entry.state = EntryState.FAILED
            self._metrics.record_failure(e)
            logger.debug(
                f"{entry.operation_name} failed on {self.name}: {e}",
                extra={"operation_name": entry.operation_name, "entry_id": entry.id},
            )
            if self._metrics_collector is not None:
                self._metrics_collector.inc_counter(CALLS_FAILED_TOTAL, labels=self._labels)
            if not entry.future.done():
                entry.future.set_exception(e)
        else:
            entry.state = EntryState.DONE
            logger.debug(
                f"Completed {entry.operation_name} on {self.name}",
                extra={"operation_name": entry.operation_name, "entry_id": entry.id},
            )
            if self._metrics_collector is not None:
                self._metrics_collector.inc_counter(
                    CALLS_COMPLETED_TOTAL, labels=self._labels
                )
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            self._metrics.running_requests -= 1
            if self._metrics_collector is not None:
                self._metrics_collector.dec_gauge(ACTIVE_CALLS, labels=self._labels)
            self._wakeup.set()

    # ------------------------------------------------------------------
    # Queue maintenance
    # ------------------------------------------------------------------

    def _discard(self, entry: QueueEntry) -> None:
        """Drop a queued entry whose caller went away."""
        if entry.state is not EntryState.QUEUED:
            return
        entry.state = EntryState.FAILED
        with contextlib.suppress(ValueError):
            self._queue.remove(entry)
        self._metrics.queued_requests -= 1
        if self._metrics_collector is not None:
            self._metrics_collector.inc_counter(CALLS_CANCELLED_TOTAL, labels=self._labels)
        self._on_queue_change()
        self._wakeup.set()

    def _reject_queued(self, reason: str) -> int:
        rejected = 0
        while self._queue:
            entry = self._queue.popleft()
            if entry.state is not EntryState.QUEUED:
                continue
            entry.state = EntryState.FAILED
            self._metrics.queued_requests -= 1
            if not entry.future.done():
                entry.future.set_exception(
                    QueueCancelledError(
                        f"{entry.operation_name} rejected: {reason}",
                        scheduler_name=self.name,
                        entry_id=entry.id,
                    )
                )
                rejected += 1

        if rejected and self._metrics_collector is not None:
            self._metrics_collector.inc_counter(
                CALLS_CANCELLED_TOTAL, value=rejected, labels=self._labels
            )
        self._on_queue_change()
        return rejected

    def _on_queue_change(self) -> None:
        """Publish queue depth and log high-water crossings."""
        depth = self._metrics.queued_requests
        if self._metrics_collector is not None:
            self._metrics_collector.set_gauge(QUEUE_DEPTH, depth, labels=self._labels)

        high_water = self.config.high_water
        if high_water is None:
            return
        if depth >= high_water and not self._above_high_water:
            self._above_high_water = True
            logger.warning(
                f"Queue for {self.name} reached high-water mark "
                f"({depth} >= {high_water} queued calls)",
                extra={"scheduler": self.name, "queue_depth": depth},
            )
            if self._metrics_collector is not None:
                self._metrics_collector.inc_counter(
                    QUEUE_HIGH_WATER_TOTAL, labels=self._labels
                )
        elif depth < high_water and self._above_high_water:
            self._above_high_water = False
            logger.info(f"Queue for {self.name} back below high-water mark ({depth})")


__all__ = ["RateLimitedScheduler"]
