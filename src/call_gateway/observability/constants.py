# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Metric name constants following Prometheus naming conventions.

All metric names use the ``call_gateway_`` prefix.

Naming Conventions:
    - Counter metrics end with ``_total``
    - Histogram metrics for time end with ``_seconds``
    - Gauges use present-tense descriptive names

Labels are kept categorical to bound cardinality:
    - ``scheduler`` - Scheduler name (github_api, free_llm, paid_llm, ...)
    - ``reason`` - Failure classification reason (rate_limited, server_error, ...)
    - ``namespace`` - Operation group that fell back (repos, pulls, ...)

Never label with operation arguments, entry ids or timestamps.
"""

METRIC_PREFIX = "call_gateway"
"""Prefix for all Prometheus metrics in this library."""


# =============================================================================
# Scheduler Metrics (scheduler/scheduler.py)
# =============================================================================

CALLS_SCHEDULED_TOTAL = f"{METRIC_PREFIX}_calls_scheduled_total"
"""Total calls admitted by a scheduler."""

CALLS_COMPLETED_TOTAL = f"{METRIC_PREFIX}_calls_completed_total"
"""Total admitted calls that completed successfully."""

CALLS_FAILED_TOTAL = f"{METRIC_PREFIX}_calls_failed_total"
"""Total admitted calls whose operation raised."""

CALLS_CANCELLED_TOTAL = f"{METRIC_PREFIX}_calls_cancelled_total"
"""Total queued calls discarded by clear_queue(), shutdown() or caller cancellation."""

QUEUE_HIGH_WATER_TOTAL = f"{METRIC_PREFIX}_queue_high_water_total"
"""Total times the queue depth crossed the high-water mark."""

QUEUE_DEPTH = f"{METRIC_PREFIX}_queue_depth"
"""Calls waiting for admission."""

ACTIVE_CALLS = f"{METRIC_PREFIX}_active_calls"
"""Calls currently running."""

QUEUE_WAIT_SECONDS = f"{METRIC_PREFIX}_queue_wait_seconds"
"""Time between submission and admission."""


# =============================================================================
# Backoff Metrics (backoff/engine.py)
# =============================================================================

RETRIES_TOTAL = f"{METRIC_PREFIX}_retries_total"
"""Total retries scheduled by the backoff engine."""

RETRIES_EXHAUSTED_TOTAL = f"{METRIC_PREFIX}_retries_exhausted_total"
"""Total calls that failed after every retry."""


# =============================================================================
# Fallback Metrics (fallback/gateway.py)
# =============================================================================

FALLBACKS_TOTAL = f"{METRIC_PREFIX}_fallbacks_total"
"""Total calls re-issued with the secondary credential."""

FALLBACK_DENIALS_TOTAL = f"{METRIC_PREFIX}_fallback_denials_total"
"""Total calls denied with the secondary credential as well."""


# =============================================================================
# Histogram Buckets
# =============================================================================

WAIT_BUCKETS: list[float] = [
    0.01,
    0.05,
    0.1,
    0.5,
    1.0,
    5.0,
    20.0,
    60.0,
    300.0,
    float("inf"),
]
"""Queue wait buckets in seconds, sized for minute-scale provider spacing."""


__all__ = [
    "ACTIVE_CALLS",
    "CALLS_CANCELLED_TOTAL",
    "CALLS_COMPLETED_TOTAL",
    "CALLS_FAILED_TOTAL",
    "CALLS_SCHEDULED_TOTAL",
    "FALLBACKS_TOTAL",
    "FALLBACK_DENIALS_TOTAL",
    "METRIC_PREFIX",
    "QUEUE_DEPTH",
    "QUEUE_HIGH_WATER_TOTAL",
    "QUEUE_WAIT_SECONDS",
    "RETRIES_EXHAUSTED_TOTAL",
    "RETRIES_TOTAL",
    "WAIT_BUCKETS",
]
