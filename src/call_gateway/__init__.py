# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Call Gateway - Resilience layer for outbound API calls.

This library sits between an application and the rate-limited, occasionally
flaky APIs it depends on (source-control hosting, language-model providers).

Key Features:
    - FIFO admission with concurrency, spacing and quota-reservoir limits
    - Retries with exponential backoff, jitter and provider wait hints
    - One-shot fallback to a secondary credential on permission denial
    - Immutable metrics snapshots and optional Prometheus export

Quick Start:
    >>> from call_gateway import CallDescriptor, create_dispatcher
    >>>
    >>> dispatcher = create_dispatcher("github_api", app_client, secondary=pat_client)
    >>> async with dispatcher:
    ...     repo = await dispatcher.dispatch(
    ...         CallDescriptor("repos.get", lambda gh: gh.repos.get(owner="acme", repo="docs"))
    ...     )

Main Exports:
    - CallDispatcher, create_dispatcher: Composition root
    - RateLimitedScheduler, SchedulerConfig: Admission control
    - BackoffEngine, BackoffConfig, with_backoff: Retries
    - CredentialFallbackGateway, WrappedClient: Credential fallback

Install the 'full' extra for Prometheus export:
    pip install call-gateway[full]

Version: 1.0.0
"""

__version__ = "1.0.0"

from .backoff import (
    DEFAULT_BACKOFF_CONFIG,
    SOURCE_CONTROL_BACKOFF_CONFIG,
    BackoffConfig,
    BackoffEngine,
    classify_error,
    compute_delay_ms,
    with_backoff,
)
from .dispatcher import (
    BACKOFF_PRESETS,
    CallDispatcher,
    DispatcherConfig,
    create_dispatcher,
)
from .exceptions import (
    ClientError,
    ConfigurationError,
    GatewayError,
    NetworkError,
    PermissionDeniedError,
    QueueCancelledError,
    RateLimitedError,
    RetryExhaustedError,
    SchedulerClosedError,
    ServerError,
    UpstreamError,
)
from .fallback import FALLBACK_NAMESPACES, CredentialFallbackGateway, WrappedClient
from .observability import MetricsSnapshot, UnifiedMetricsCollector
from .protocols import CallInvokerProtocol, ClassifierProtocol
from .scheduler import (
    SCHEDULER_PRESETS,
    RateLimitedScheduler,
    SchedulerConfig,
    get_preset,
)
from .types import (
    CallDescriptor,
    EntryState,
    ErrorClassification,
    FailureKind,
    plain_call,
)

__all__ = [
    "BACKOFF_PRESETS",
    "DEFAULT_BACKOFF_CONFIG",
    "FALLBACK_NAMESPACES",
    "SCHEDULER_PRESETS",
    "SOURCE_CONTROL_BACKOFF_CONFIG",
    # Backoff
    "BackoffConfig",
    "BackoffEngine",
    # Types
    "CallDescriptor",
    # Dispatcher
    "CallDispatcher",
    # Protocols
    "CallInvokerProtocol",
    "ClassifierProtocol",
    # Exceptions
    "ClientError",
    "ConfigurationError",
    # Fallback
    "CredentialFallbackGateway",
    "DispatcherConfig",
    "EntryState",
    "ErrorClassification",
    "FailureKind",
    "GatewayError",
    # Observability
    "MetricsSnapshot",
    "NetworkError",
    "PermissionDeniedError",
    "QueueCancelledError",
    # Scheduler
    "RateLimitedError",
    "RateLimitedScheduler",
    "RetryExhaustedError",
    "SchedulerClosedError",
    "SchedulerConfig",
    "ServerError",
    "UnifiedMetricsCollector",
    "UpstreamError",
    "WrappedClient",
    "__version__",
    "classify_error",
    "compute_delay_ms",
    "create_dispatcher",
    "get_preset",
    "plain_call",
    "with_backoff",
]
