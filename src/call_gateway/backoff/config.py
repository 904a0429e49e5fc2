# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Backoff configuration for the retry engine.

Delays are expressed in milliseconds to match the units providers use in
their rate-limit documentation.
"""

from dataclasses import dataclass

# Jitter spreads each computed delay uniformly within +/- this fraction
JITTER_RATIO = 0.3


@dataclass(frozen=True)
class BackoffConfig:
    """
    Retry envelope for a single call.

    The delay before attempt ``n > 1`` is
    ``min(max_delay_ms, initial_delay_ms * multiplier ** (n - 2))``.
    """

    initial_delay_ms: float = 1_000
    """Delay before the first retry in milliseconds."""

    max_delay_ms: float = 60_000
    """Upper bound for computed delays in milliseconds."""

    max_retries: int = 5
    """Retries after the first attempt; a call runs at most max_retries + 1 times."""

    multiplier: float = 2.0
    """Growth factor applied per retry."""

    jitter: bool = True
    """Randomize each computed delay within +/-30%."""

    hint_buffer_ms: float = 1_000
    """Safety padding added on top of a provider-supplied wait hint."""

    max_hint_delay_ms: float = 300_000
    """Hard ceiling for provider-supplied wait hints (5 minutes)."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be non-negative")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be >= initial_delay_ms")
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be at least 1.0")
        if self.hint_buffer_ms < 0:
            raise ValueError("hint_buffer_ms must be non-negative")
        if self.max_hint_delay_ms <= 0:
            raise ValueError("max_hint_delay_ms must be positive")


DEFAULT_BACKOFF_CONFIG = BackoffConfig()
"""General-purpose envelope, used for language-model calls."""

SOURCE_CONTROL_BACKOFF_CONFIG = BackoffConfig(
    initial_delay_ms=1_000,
    max_delay_ms=10_000,
    max_retries=3,
    multiplier=2.0,
)
"""Tighter envelope for source-control API calls."""


__all__ = [
    "DEFAULT_BACKOFF_CONFIG",
    "JITTER_RATIO",
    "SOURCE_CONTROL_BACKOFF_CONFIG",
    "BackoffConfig",
]
