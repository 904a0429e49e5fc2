# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Admission control for outbound calls.

This module provides:
- RateLimitedScheduler: FIFO queue with concurrency, spacing and quota limits
- SchedulerConfig: Admission rules
- SCHEDULER_PRESETS / get_preset: Named configurations per upstream API
"""

from .config import SCHEDULER_PRESETS, SchedulerConfig, get_preset
from .scheduler import RateLimitedScheduler

__all__ = [
    "SCHEDULER_PRESETS",
    "RateLimitedScheduler",
    "SchedulerConfig",
    "get_preset",
]
