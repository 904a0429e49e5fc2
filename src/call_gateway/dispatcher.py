# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Call dispatcher: the single entry point collaborators call through.

Layers, outermost first::

    backoff  ->  scheduler  ->  fallback gateway  ->  client

Every attempt the backoff engine makes is submitted to the scheduler, so
retries consume a fresh concurrency slot and reservoir token, and retry
delays are slept outside any slot. The gateway is innermost because it only
swaps the credential.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Generic

from typing_extensions import Self

from .backoff.config import (
    DEFAULT_BACKOFF_CONFIG,
    SOURCE_CONTROL_BACKOFF_CONFIG,
    BackoffConfig,
)
from .backoff.engine import BackoffEngine
from .fallback.client import WrappedClient
from .fallback.gateway import FALLBACK_NAMESPACES, CredentialFallbackGateway
from .observability.collector import get_metrics_collector
from .observability.metrics import MetricsSnapshot
from .observability.protocols import MetricsCollectorProtocol
from .protocols.classifier import ClassifierProtocol
from .scheduler.config import SchedulerConfig, get_preset
from .scheduler.scheduler import RateLimitedScheduler
from .types.call import CallDescriptor, ClientT

logger = logging.getLogger(__name__)

BACKOFF_PRESETS: dict[str, BackoffConfig] = {
    "github_api": SOURCE_CONTROL_BACKOFF_CONFIG,
    "free_llm": DEFAULT_BACKOFF_CONFIG,
    "paid_llm": DEFAULT_BACKOFF_CONFIG,
}
"""Retry envelope used for each scheduler preset unless overridden."""


@dataclass
class DispatcherConfig:
    """Construction options for :func:`create_dispatcher`."""

    scheduler: SchedulerConfig | None = None
    """Admission rules. None uses the preset named by the dispatcher target."""

    backoff: BackoffConfig | None = None
    """Retry envelope. None uses the target's entry in BACKOFF_PRESETS."""

    use_secondary_credential: bool = True
    """Fall back to the secondary credential (when one is supplied) on denial."""

    fallback_namespaces: frozenset[str] = FALLBACK_NAMESPACES
    """Operation groups eligible for credential fallback."""

    metrics_enabled: bool = False
    """Publish scheduler, retry and fallback metrics to the process-wide collector."""

    start_prometheus_server: bool = False
    """Start the Prometheus HTTP server when metrics are enabled."""

    prometheus_host: str = "127.0.0.1"
    """Prometheus metrics host."""

    prometheus_port: int = 9090
    """Prometheus metrics port."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not 0 < self.prometheus_port < 65536:
            raise ValueError("prometheus_port must be between 1 and 65535")
        if not self.fallback_namespaces:
            raise ValueError("fallback_namespaces must not be empty")


class CallDispatcher(Generic[ClientT]):
    """
    Composes scheduler, backoff engine and fallback gateway.

    Collaborators hand over a CallDescriptor and must not add retry logic of
    their own.

    Example:
        >>> dispatcher = create_dispatcher("github_api", app_client, secondary=pat_client)
        >>> async with dispatcher:
        ...     repo = await dispatcher.dispatch(
        ...         CallDescriptor("repos.get", lambda gh: gh.repos.get(owner="acme", repo="docs"))
        ...     )
    """

    def __init__(
        self,
        scheduler: RateLimitedScheduler,
        backoff: BackoffEngine,
        gateway: CredentialFallbackGateway[ClientT],
    ):
        self.scheduler = scheduler
        self.backoff = backoff
        self.gateway = gateway

    @property
    def name(self) -> str:
        return self.scheduler.name

    async def dispatch(self, call: CallDescriptor[ClientT, Any]) -> Any:
        """
        Execute ``call`` through backoff, admission control and fallback.

        Returns:
            The operation's result

        Raises:
            RetryExhaustedError: Retryable failures on every attempt
            PermissionDeniedError: Both credentials denied
            QueueCancelledError: The attempt was discarded by the scheduler
            Exception: Fatal errors from the operation, unchanged
        """

        async def attempt() -> Any:
            return await self.scheduler.schedule(
                lambda: self.gateway.invoke(call), operation_name=call.operation_name
            )

        return await self.backoff.run(attempt, operation_name=call.operation_name)

    def wrap_client(self, operations: Mapping[str, Iterable[str]]) -> WrappedClient:
        """Build a WrappedClient whose operations are dispatched through this dispatcher."""
        return WrappedClient(self.dispatch, operations, namespaces=self.gateway.namespaces)

    def get_metrics(self) -> MetricsSnapshot:
        return self.scheduler.get_metrics()

    async def shutdown(self, drain_timeout: float | None = None) -> None:
        await self.scheduler.shutdown(drain_timeout)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.shutdown()


def create_dispatcher(
    target: str,
    primary: ClientT,
    secondary: ClientT | None = None,
    config: DispatcherConfig | None = None,
    classifier: ClassifierProtocol | None = None,
    metrics_collector: MetricsCollectorProtocol | None = None,
) -> CallDispatcher[ClientT]:
    """
    Factory function to create a CallDispatcher with dependency injection.

    Args:
        target: Scheduler preset name (``github_api``, ``free_llm``,
            ``paid_llm``), or any name when ``config.scheduler`` is given
        primary: Client bound to the primary credential
        secondary: Client bound to the secondary credential, if any
        config: Dispatcher options (defaults to DispatcherConfig())
        classifier: Failure classifier shared by backoff and fallback
        metrics_collector: Metrics sink; defaults to the global collector
            when ``config.metrics_enabled`` is set

    Returns:
        Configured CallDispatcher

    Raises:
        ConfigurationError: If ``target`` is not a preset and no scheduler
            config was supplied
    """
    config = config or DispatcherConfig()

    scheduler_config = config.scheduler or get_preset(target)
    backoff_config = config.backoff or BACKOFF_PRESETS.get(target, DEFAULT_BACKOFF_CONFIG)

    collector = metrics_collector
    if collector is None and config.metrics_enabled:
        global_collector = get_metrics_collector()
        if config.start_prometheus_server and not global_collector.server_running:
            global_collector.start_http_server(config.prometheus_host, config.prometheus_port)
        collector = global_collector

    if secondary is not None and not config.use_secondary_credential:
        logger.debug(f"Secondary credential for {target} disabled by configuration")
        secondary = None

    scheduler = RateLimitedScheduler(
        scheduler_config, name=target, metrics_collector=collector
    )
    backoff = BackoffEngine(
        backoff_config, classifier=classifier, metrics_collector=collector
    )
    gateway = CredentialFallbackGateway(
        primary,
        secondary=secondary,
        namespaces=config.fallback_namespaces,
        classifier=classifier,
        metrics_collector=collector,
    )

    logger.info(
        f"Created dispatcher {target} (max_concurrent={scheduler_config.max_concurrent}, "
        f"min_interval_ms={scheduler_config.min_interval_ms}, "
        f"max_retries={backoff_config.max_retries}, "
        f"fallback={'enabled' if gateway.has_fallback else 'disabled'})"
    )
    return CallDispatcher(scheduler, backoff, gateway)


__all__ = [
    "BACKOFF_PRESETS",
    "CallDispatcher",
    "DispatcherConfig",
    "create_dispatcher",
]
