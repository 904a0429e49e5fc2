# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Queue types for the rate-limited scheduler.

This module defines the transient queue entry owned by the scheduler.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EntryState(Enum):
    """Lifecycle state of a queue entry."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class QueueEntry:
    """
    A call waiting in (or admitted from) the scheduler queue.

    Wraps the zero-argument operation along with a future that is resolved
    when the operation settles. Entries are created on submit and dropped
    once their future is settled.

    Attributes:
        operation: Async callable that performs the call
        future: Future resolved with the operation result or error
        operation_name: Label used in logs
        id: Unique identifier for this entry
        submitted_at: UTC timestamp when the entry was queued
        state: Current lifecycle state
        started_at: Monotonic time at admission, if admitted
    """

    operation: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"
    operation_name: str = "anonymous"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: EntryState = EntryState.QUEUED
    started_at: float | None = None

    @property
    def is_settled(self) -> bool:
        """Whether the entry reached a terminal state."""
        return self.state in (EntryState.DONE, EntryState.FAILED)

    @property
    def wait_seconds(self) -> float:
        """Seconds spent queued so far (or until admission)."""
        return (datetime.now(timezone.utc) - self.submitted_at).total_seconds()


__all__ = ["EntryState", "QueueEntry"]
