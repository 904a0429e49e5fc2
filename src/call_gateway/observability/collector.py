# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Unified metrics collector supporting both dict-based and Prometheus metrics.

The collector is the process-wide sink for scheduler, backoff and fallback
metrics. Every update lands in thread-safe dicts (for JSON export and tests)
and, when ``prometheus_client`` is installed, is mirrored into Prometheus
metric objects.

Usage:
    >>> from call_gateway.observability.collector import get_metrics_collector
    >>> collector = get_metrics_collector()
    >>> collector.inc_counter(
    ...     "call_gateway_calls_scheduled_total", labels={"scheduler": "github_api"}
    ... )
    >>> collector.get_metrics()["counters"]

Thread Safety:
    All dict updates happen under an RLock.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from .constants import (
    ACTIVE_CALLS,
    CALLS_CANCELLED_TOTAL,
    CALLS_COMPLETED_TOTAL,
    CALLS_FAILED_TOTAL,
    CALLS_SCHEDULED_TOTAL,
    FALLBACK_DENIALS_TOTAL,
    FALLBACKS_TOTAL,
    QUEUE_DEPTH,
    QUEUE_HIGH_WATER_TOTAL,
    QUEUE_WAIT_SECONDS,
    RETRIES_EXHAUSTED_TOTAL,
    RETRIES_TOTAL,
    WAIT_BUCKETS,
)

logger = logging.getLogger(__name__)

# Type declarations for optional prometheus_client imports
if TYPE_CHECKING:
    from prometheus_client import (
        Counter as CounterType,
        Gauge as GaugeType,
        Histogram as HistogramType,
    )
else:
    CounterType = object
    GaugeType = object
    HistogramType = object

# Check Prometheus availability with aliased imports to avoid no-redef
try:
    from prometheus_client import (
        REGISTRY as _REGISTRY,
        Counter as _Counter,
        Gauge as _Gauge,
        Histogram as _Histogram,
        start_http_server as _start_http_server,
    )

    Counter: type[CounterType] | None = _Counter
    Gauge: type[GaugeType] | None = _Gauge
    Histogram: type[HistogramType] | None = _Histogram
    REGISTRY: Any | None = _REGISTRY
    start_http_server: Callable[..., Any] | None = _start_http_server
    PROMETHEUS_AVAILABLE = True
except ImportError:
    Counter = None
    Gauge = None
    Histogram = None
    REGISTRY = None
    start_http_server = None
    PROMETHEUS_AVAILABLE = False


@dataclass
class MetricDefinition:
    """Schema for a pre-declared metric."""

    name: str
    metric_type: str  # 'counter', 'gauge', 'histogram'
    description: str
    label_names: tuple[str, ...] = ()
    buckets: list[float] | None = None


METRIC_DEFINITIONS: dict[str, MetricDefinition] = {
    CALLS_SCHEDULED_TOTAL: MetricDefinition(
        CALLS_SCHEDULED_TOTAL, "counter", "Total calls admitted", ("scheduler",)
    ),
    CALLS_COMPLETED_TOTAL: MetricDefinition(
        CALLS_COMPLETED_TOTAL, "counter", "Total calls completed", ("scheduler",)
    ),
    CALLS_FAILED_TOTAL: MetricDefinition(
        CALLS_FAILED_TOTAL, "counter", "Total calls failed", ("scheduler",)
    ),
    CALLS_CANCELLED_TOTAL: MetricDefinition(
        CALLS_CANCELLED_TOTAL,
        "counter",
        "Total queued calls discarded before admission",
        ("scheduler",),
    ),
    QUEUE_HIGH_WATER_TOTAL: MetricDefinition(
        QUEUE_HIGH_WATER_TOTAL,
        "counter",
        "Total high-water crossings of the admission queue",
        ("scheduler",),
    ),
    QUEUE_DEPTH: MetricDefinition(
        QUEUE_DEPTH, "gauge", "Calls waiting for admission", ("scheduler",)
    ),
    ACTIVE_CALLS: MetricDefinition(
        ACTIVE_CALLS, "gauge", "Calls currently running", ("scheduler",)
    ),
    QUEUE_WAIT_SECONDS: MetricDefinition(
        QUEUE_WAIT_SECONDS,
        "histogram",
        "Time spent waiting for admission",
        ("scheduler",),
        buckets=WAIT_BUCKETS,
    ),
    RETRIES_TOTAL: MetricDefinition(
        RETRIES_TOTAL, "counter", "Total retries scheduled", ("reason",)
    ),
    RETRIES_EXHAUSTED_TOTAL: MetricDefinition(
        RETRIES_EXHAUSTED_TOTAL, "counter", "Total calls that exhausted retries", ()
    ),
    FALLBACKS_TOTAL: MetricDefinition(
        FALLBACKS_TOTAL,
        "counter",
        "Total calls re-issued with the secondary credential",
        ("namespace",),
    ),
    FALLBACK_DENIALS_TOTAL: MetricDefinition(
        FALLBACK_DENIALS_TOTAL,
        "counter",
        "Total calls denied with the secondary credential",
        ("namespace",),
    ),
}


class UnifiedMetricsCollector:
    """
    Metrics collector with a dict store and an optional Prometheus mirror.

    Cardinality Protection:
        At most MAX_LABEL_COMBINATIONS label combinations are tracked per
        metric; further combinations are dropped with a warning.

    Example:
        >>> collector = UnifiedMetricsCollector(enable_prometheus=False)
        >>> collector.inc_counter(RETRIES_TOTAL, labels={"reason": "rate_limited"})
        >>> collector.get_flat_metrics()
        {'call_gateway_retries_total{reason=rate_limited}': 1}
    """

    MAX_LABEL_COMBINATIONS: ClassVar[int] = 1000

    # Dict-side histogram observations kept per label combination
    MAX_OBSERVATIONS: ClassVar[int] = 10_000

    def __init__(
        self,
        enable_prometheus: bool = True,
        registry: Any | None = None,
    ) -> None:
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Whether to mirror into Prometheus (if installed)
            registry: Optional Prometheus CollectorRegistry, mainly for tests
        """
        self._enable_prometheus = enable_prometheus and PROMETHEUS_AVAILABLE
        self._registry = registry if registry is not None else REGISTRY

        self._counters: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )
        self._gauges: dict[str, dict[str, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._histograms: dict[str, dict[str, list[float]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self._label_combinations: dict[str, set[str]] = defaultdict(set)
        self._lock = threading.RLock()

        # Prometheus metric instances, created on first use
        self._prom_metrics: dict[str, Any] = {}
        self._server_running = False

        logger.debug(
            f"UnifiedMetricsCollector initialized "
            f"(prometheus={'enabled' if self._enable_prometheus else 'disabled'})"
        )

    def _labels_to_key(self, labels: dict[str, str] | None) -> str:
        if not labels:
            return ""
        return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    def _check_cardinality(self, name: str, label_key: str) -> bool:
        """Return False when a new label combination would exceed the limit."""
        seen = self._label_combinations[name]
        if label_key in seen:
            return True
        if len(seen) >= self.MAX_LABEL_COMBINATIONS:
            logger.warning(
                f"Cardinality limit ({self.MAX_LABEL_COMBINATIONS}) reached "
                f"for metric {name}. Dropping label combination: {label_key}"
            )
            return False
        seen.add(label_key)
        return True

    def _prom_metric(
        self, name: str, metric_type: str, labels: dict[str, str] | None
    ) -> Any | None:
        """Get or create the Prometheus object backing ``name``."""
        if not self._enable_prometheus:
            return None
        if name in self._prom_metrics:
            return self._prom_metrics[name]

        factory = {"counter": Counter, "gauge": Gauge, "histogram": Histogram}[
            metric_type
        ]
        if factory is None:
            return None

        defn = METRIC_DEFINITIONS.get(name)
        if defn is not None and defn.metric_type == metric_type:
            description = defn.description
            label_names = list(defn.label_names)
        else:
            description = f"Dynamic {metric_type}: {name}"
            label_names = sorted(labels) if labels else []

        kwargs: dict[str, Any] = {"registry": self._registry}
        if metric_type == "histogram":
            kwargs["buckets"] = (defn.buckets if defn else None) or WAIT_BUCKETS

        try:
            metric = factory(name, description, label_names, **kwargs)
        except ValueError as e:
            # Duplicate registration in the shared registry
            logger.warning(f"Failed to create Prometheus {metric_type} {name}: {e}")
            metric = None

        self._prom_metrics[name] = metric
        return metric

    def _mirror(
        self,
        name: str,
        metric_type: str,
        labels: dict[str, str] | None,
        update: Callable[[Any], None],
    ) -> None:
        metric = self._prom_metric(name, metric_type, labels)
        if metric is None:
            return
        try:
            update(metric.labels(**labels) if labels else metric)
        except (ValueError, KeyError) as e:
            logger.debug(f"Prometheus {metric_type} update failed for {name}: {e}")

    # === Counter Operations ===

    def inc_counter(
        self,
        name: str,
        value: int = 1,
        labels: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError("Counter increment must be non-negative")

        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._counters[name][label_key] += value

        self._mirror(name, "counter", labels, lambda m: m.inc(value))

    # === Gauge Operations ===

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to a specific value."""
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] = value

        self._mirror(name, "gauge", labels, lambda m: m.set(value))

    def inc_gauge(
        self,
        name: str,
        value: float = 1.0,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Increment a gauge metric."""
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] += value

        self._mirror(name, "gauge", labels, lambda m: m.inc(value))

    def dec_gauge(
        self,
        name: str,
        value: float = 1.0,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Decrement a gauge metric."""
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            self._gauges[name][label_key] -= value

        self._mirror(name, "gauge", labels, lambda m: m.dec(value))

    # === Histogram Operations ===

    def observe_histogram(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record an observation in a histogram."""
        label_key = self._labels_to_key(labels)
        with self._lock:
            if not self._check_cardinality(name, label_key):
                return
            observations = self._histograms[name][label_key]
            observations.append(value)
            if len(observations) > self.MAX_OBSERVATIONS:
                del observations[: len(observations) - self.MAX_OBSERVATIONS // 2]

        self._mirror(name, "histogram", labels, lambda m: m.observe(value))

    # === Snapshot Operations ===

    def get_metrics(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Returns:
            {"counters": {...}, "gauges": {...}, "histograms": {...}} keyed by
            metric name, then by label key. Histograms are summarized as
            count/sum/avg/min/max.
        """
        with self._lock:
            counters = {name: dict(values) for name, values in self._counters.items()}
            gauges = {name: dict(values) for name, values in self._gauges.items()}
            histograms: dict[str, dict[str, dict[str, Any]]] = {}
            for name, label_values in self._histograms.items():
                histograms[name] = {
                    label_key: {
                        "count": len(obs),
                        "sum": sum(obs),
                        "avg": sum(obs) / len(obs),
                        "min": min(obs),
                        "max": max(obs),
                    }
                    for label_key, obs in label_values.items()
                    if obs
                }

        return {"counters": counters, "gauges": gauges, "histograms": histograms}

    def get_flat_metrics(self) -> dict[str, Any]:
        """
        Get counters and gauges as a flat dict.

        Labeled series are keyed as ``"metric_name{label=value,...}"``.
        """
        result: dict[str, Any] = {}
        with self._lock:
            for store in (self._counters, self._gauges):
                for name, label_values in store.items():
                    for label_key, value in label_values.items():
                        result[f"{name}{{{label_key}}}" if label_key else name] = value
        return result

    # === Lifecycle ===

    def reset(self) -> None:
        """Reset the dict store. Prometheus objects keep their values."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._label_combinations.clear()

        logger.debug("Metrics collector reset")

    def start_http_server(self, host: str = "127.0.0.1", port: int = 9090) -> bool:
        """
        Start the Prometheus HTTP server for scraping.

        Binds to localhost by default; pass ``host="0.0.0.0"`` explicitly for
        container deployments.

        Returns:
            True if the server is running after the call, False otherwise
        """
        if start_http_server is None:
            logger.warning(
                "Cannot start Prometheus server: prometheus_client not installed"
            )
            return False

        if self._server_running:
            logger.warning("Prometheus server already running")
            return True

        try:
            start_http_server(port, addr=host, registry=self._registry)
        except OSError as e:
            logger.error(f"Failed to start Prometheus server: {e}")
            return False

        self._server_running = True
        logger.info(f"Prometheus metrics server started on {host}:{port}")
        return True

    @property
    def prometheus_available(self) -> bool:
        return PROMETHEUS_AVAILABLE

    @property
    def prometheus_enabled(self) -> bool:
        return self._enable_prometheus

    @property
    def server_running(self) -> bool:
        return self._server_running


# =============================================================================
# Singleton Pattern
# =============================================================================

_global_collector: UnifiedMetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics_collector(enable_prometheus: bool = True) -> UnifiedMetricsCollector:
    """
    Get or create the process-wide metrics collector.

    Args:
        enable_prometheus: Whether to mirror into Prometheus (first call only)
    """
    global _global_collector

    if _global_collector is None:
        with _collector_lock:
            if _global_collector is None:
                _global_collector = UnifiedMetricsCollector(
                    enable_prometheus=enable_prometheus
                )

    return _global_collector


def reset_metrics_collector() -> None:
    """Drop the process-wide collector (mainly for testing)."""
    global _global_collector
    with _collector_lock:
        if _global_collector:
            _global_collector.reset()
        _global_collector = None


__all__ = [
    "METRIC_DEFINITIONS",
    "PROMETHEUS_AVAILABLE",
    "MetricDefinition",
    "UnifiedMetricsCollector",
    "get_metrics_collector",
    "reset_metrics_collector",
]
