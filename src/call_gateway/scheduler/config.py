# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Scheduler configuration and named presets.

Presets are tuned to published provider limits:

- ``github_api``: 5 000 requests/hour on a personal token, i.e. one request
  every 720 ms, with short bursts of up to 5.
- ``free_llm``: free language-model tiers (about 3 requests/minute), one
  request every 20 s.
- ``paid_llm``: paid language-model tiers, one request per second with
  bursts of up to 10.
"""

from dataclasses import dataclass, replace
from typing import Any

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Admission rules for a rate-limited scheduler.

    An entry is admitted when a concurrency slot is free, the reservoir has
    a token (or no reservoir is configured) and at least ``min_interval_ms``
    has passed since the previous admission.
    """

    max_concurrent: int = 1
    """Maximum number of operations running at once."""

    min_interval_ms: float = 0
    """Minimum spacing between successive admissions in milliseconds."""

    reservoir: int | None = None
    """Quota capacity. None disables the reservoir."""

    reservoir_refill_interval_ms: float | None = None
    """How often the reservoir grows. None disables refill."""

    reservoir_refill_amount: int = 0
    """Tokens added per refill interval, capped at ``reservoir``."""

    high_water: int | None = None
    """Queue depth that triggers a warning log. None disables the warning."""

    drain_timeout_ms: float | None = 30_000
    """Default bound on how long shutdown() waits for running operations."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.min_interval_ms < 0:
            raise ValueError("min_interval_ms must be non-negative")
        if self.reservoir is not None and self.reservoir < 0:
            raise ValueError("reservoir must be non-negative")
        if self.reservoir_refill_interval_ms is not None:
            if self.reservoir_refill_interval_ms <= 0:
                raise ValueError("reservoir_refill_interval_ms must be positive")
            if self.reservoir is None:
                raise ValueError("reservoir_refill_interval_ms requires a reservoir")
        if self.reservoir_refill_amount < 0:
            raise ValueError("reservoir_refill_amount must be non-negative")
        if self.high_water is not None and self.high_water < 1:
            raise ValueError("high_water must be at least 1")
        if self.drain_timeout_ms is not None and self.drain_timeout_ms < 0:
            raise ValueError("drain_timeout_ms must be non-negative")

    @property
    def refills(self) -> bool:
        """Whether the reservoir is replenished over time."""
        return (
            self.reservoir is not None
            and self.reservoir_refill_interval_ms is not None
            and self.reservoir_refill_amount > 0
        )


SCHEDULER_PRESETS: dict[str, SchedulerConfig] = {
    "github_api": SchedulerConfig(
        max_concurrent=10,
        min_interval_ms=720,
        reservoir=5,
        reservoir_refill_interval_ms=720,
        reservoir_refill_amount=1,
        high_water=100,
    ),
    "free_llm": SchedulerConfig(
        max_concurrent=5,
        min_interval_ms=20_000,
        reservoir=5,
        reservoir_refill_interval_ms=20_000,
        reservoir_refill_amount=1,
        high_water=50,
    ),
    "paid_llm": SchedulerConfig(
        max_concurrent=3,
        min_interval_ms=1_000,
        reservoir=10,
        reservoir_refill_interval_ms=1_000,
        reservoir_refill_amount=1,
        high_water=100,
    ),
}


def get_preset(name: str, **overrides: Any) -> SchedulerConfig:
    """
    Look up a named preset, optionally overriding individual fields.

    Args:
        name: Preset name (``github_api``, ``free_llm`` or ``paid_llm``)
        **overrides: SchedulerConfig fields to replace

    Raises:
        ConfigurationError: If the preset does not exist or an override is invalid
    """
    try:
        preset = SCHEDULER_PRESETS[name]
    except KeyError:
        available = ", ".join(sorted(SCHEDULER_PRESETS))
        raise ConfigurationError(
            f"Unknown scheduler preset {name!r} (available: {available})"
        ) from None

    if not overrides:
        return preset

    try:
        return replace(preset, **overrides)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid override for preset {name!r}: {e}") from e


__all__ = ["SCHEDULER_PRESETS", "SchedulerConfig", "get_preset"]
