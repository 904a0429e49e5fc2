# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Scheduler metrics.

SchedulerMetrics is the live, mutable record a scheduler updates as entries
move through the queue. Readers never see it directly: ``snapshot()``
returns a frozen MetricsSnapshot, a new object on every call.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MetricsSnapshot(BaseModel):
    """
    Immutable point-in-time view of a scheduler's counters.

    Attributes:
        total_requests: Entries admitted since the scheduler was created
        queued_requests: Entries currently waiting for admission
        running_requests: Entries currently running
        failed_requests: Admitted entries whose operation raised
        last_request_time: UTC time of the most recent admission
        average_wait_ms: Mean time admitted entries spent queued
        last_error: ``"<ExceptionType>: <message>"`` of the most recent failure
    """

    model_config = ConfigDict(frozen=True)

    total_requests: int = Field(default=0, ge=0)
    queued_requests: int = Field(default=0, ge=0)
    running_requests: int = Field(default=0, ge=0)
    failed_requests: int = Field(default=0, ge=0)
    last_request_time: datetime | None = None
    average_wait_ms: float = Field(default=0.0, ge=0.0)
    last_error: str | None = None


@dataclass
class SchedulerMetrics:
    """Live scheduler counters. Owned by exactly one scheduler."""

    total_requests: int = 0
    queued_requests: int = 0
    running_requests: int = 0
    failed_requests: int = 0
    last_request_time: datetime | None = None
    last_error: str | None = None
    total_wait_ms: float = 0.0

    @property
    def average_wait_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_wait_ms / self.total_requests

    def record_admission(self, wait_ms: float, admitted_at: datetime) -> None:
        self.queued_requests -= 1
        self.running_requests += 1
        self.total_requests += 1
        self.total_wait_ms += max(0.0, wait_ms)
        self.last_request_time = admitted_at

    def record_failure(self, error: BaseException) -> None:
        self.failed_requests += 1
        self.last_error = f"{type(error).__name__}: {error}"

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            total_requests=self.total_requests,
            queued_requests=self.queued_requests,
            running_requests=self.running_requests,
            failed_requests=self.failed_requests,
            last_request_time=self.last_request_time,
            average_wait_ms=self.average_wait_ms,
            last_error=self.last_error,
        )


__all__ = ["MetricsSnapshot", "SchedulerMetrics"]
