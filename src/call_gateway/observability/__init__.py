# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Observability and metrics for the call gateway.

Classes:
    MetricsSnapshot: Frozen view of a scheduler's counters.
    SchedulerMetrics: Live scheduler counters (internal to schedulers).
    UnifiedMetricsCollector: Process-wide collector, dict and Prometheus.

Protocols:
    MetricsCollectorProtocol: Protocol for metrics collection backends.

Functions:
    get_metrics_collector: Get the global metrics collector singleton.
    reset_metrics_collector: Reset the global metrics collector singleton.
"""

from .collector import (
    METRIC_DEFINITIONS,
    PROMETHEUS_AVAILABLE,
    MetricDefinition,
    UnifiedMetricsCollector,
    get_metrics_collector,
    reset_metrics_collector,
)
from .constants import (
    ACTIVE_CALLS,
    CALLS_CANCELLED_TOTAL,
    CALLS_COMPLETED_TOTAL,
    CALLS_FAILED_TOTAL,
    CALLS_SCHEDULED_TOTAL,
    FALLBACK_DENIALS_TOTAL,
    FALLBACKS_TOTAL,
    METRIC_PREFIX,
    QUEUE_DEPTH,
    QUEUE_HIGH_WATER_TOTAL,
    QUEUE_WAIT_SECONDS,
    RETRIES_EXHAUSTED_TOTAL,
    RETRIES_TOTAL,
    WAIT_BUCKETS,
)
from .metrics import MetricsSnapshot, SchedulerMetrics
from .protocols import MetricsCollectorProtocol

__all__ = [
    # Metric names
    "ACTIVE_CALLS",
    "CALLS_CANCELLED_TOTAL",
    "CALLS_COMPLETED_TOTAL",
    "CALLS_FAILED_TOTAL",
    "CALLS_SCHEDULED_TOTAL",
    "FALLBACKS_TOTAL",
    "FALLBACK_DENIALS_TOTAL",
    "METRIC_DEFINITIONS",
    "METRIC_PREFIX",
    "PROMETHEUS_AVAILABLE",
    "QUEUE_DEPTH",
    "QUEUE_HIGH_WATER_TOTAL",
    "QUEUE_WAIT_SECONDS",
    "RETRIES_EXHAUSTED_TOTAL",
    "RETRIES_TOTAL",
    "WAIT_BUCKETS",
    "MetricDefinition",
    "MetricsCollectorProtocol",
    "MetricsSnapshot",
    "SchedulerMetrics",
    "UnifiedMetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
