# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Retry and backoff for outbound calls.

This module provides:
- BackoffConfig: Retry envelope (delays, retries, jitter, hint handling)
- BackoffEngine / with_backoff: Classification-driven retry loop
- classify_error: Failure classification (retryable, permission-denied, fatal)
"""

from .classifier import (
    DefaultErrorClassifier,
    classify_error,
    extract_retry_after_ms,
    get_status_code,
    is_network_error,
    is_rate_limit_message,
)
from .config import (
    DEFAULT_BACKOFF_CONFIG,
    SOURCE_CONTROL_BACKOFF_CONFIG,
    BackoffConfig,
)
from .engine import BackoffEngine, compute_delay_ms, hint_delay_ms, with_backoff

__all__ = [
    "DEFAULT_BACKOFF_CONFIG",
    "SOURCE_CONTROL_BACKOFF_CONFIG",
    # Config
    "BackoffConfig",
    # Engine
    "BackoffEngine",
    # Classification
    "DefaultErrorClassifier",
    "classify_error",
    "compute_delay_ms",
    "extract_retry_after_ms",
    "get_status_code",
    "hint_delay_ms",
    "is_network_error",
    "is_rate_limit_message",
    "with_backoff",
]
