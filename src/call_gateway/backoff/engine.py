# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Retry engine with exponential backoff and provider-hint awareness.

The engine executes an operation, classifies each failure, and either
re-raises it (fatal or permission-denied), or sleeps and retries it
(retryable). It keeps no state between invocations.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..exceptions import RetryExhaustedError
from ..observability.constants import RETRIES_EXHAUSTED_TOTAL, RETRIES_TOTAL
from ..observability.protocols import MetricsCollectorProtocol
from ..protocols.classifier import ClassifierProtocol
from ..types.classification import ErrorClassification
from .classifier import MS_PER_SECOND, DefaultErrorClassifier
from .config import DEFAULT_BACKOFF_CONFIG, JITTER_RATIO, BackoffConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


def compute_delay_ms(
    attempt: int,
    config: BackoffConfig = DEFAULT_BACKOFF_CONFIG,
    rng: random.Random | None = None,
) -> float:
    """
    Compute the delay before ``attempt`` (1-based) from the exponential schedule.

    The first attempt is never delayed. Before attempt ``n > 1`` the delay is
    ``min(max_delay_ms, initial_delay_ms * multiplier ** (n - 2))``, spread
    within +/-30% when jitter is enabled.

    Args:
        attempt: The attempt about to be made (1 = first call)
        config: Backoff configuration
        rng: Random source for jitter (defaults to the ``random`` module)

    Returns:
        Delay in milliseconds
    """
    if attempt <= 1:
        return 0.0

    delay = min(
        config.max_delay_ms,
        config.initial_delay_ms * (config.multiplier ** (attempt - 2)),
    )

    if config.jitter:
        uniform = rng.uniform if rng is not None else random.uniform
        delay *= uniform(1.0 - JITTER_RATIO, 1.0 + JITTER_RATIO)

    return float(delay)


def hint_delay_ms(retry_after_ms: float, config: BackoffConfig) -> float:
    """Pad a provider wait hint with the safety buffer and clamp it to the ceiling."""
    return float(min(config.max_hint_delay_ms, max(0.0, retry_after_ms) + config.hint_buffer_ms))


class BackoffEngine:
    """
    Executes operations with classification-driven retries.

    Behavior per failure kind:
    - RETRYABLE: sleep, then retry (provider hint preferred over the
      exponential schedule)
    - PERMISSION_DENIED / FATAL: re-raise the original error immediately

    After ``max_retries + 1`` failed attempts, raises RetryExhaustedError
    chained from the last error.

    Example:
        >>> engine = BackoffEngine(BackoffConfig(max_retries=3))
        >>> result = await engine.run(lambda: client.fetch(), operation_name="repos.get")
    """

    def __init__(
        self,
        config: BackoffConfig | None = None,
        classifier: ClassifierProtocol | None = None,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
        metrics_collector: MetricsCollectorProtocol | None = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Retry envelope (defaults to DEFAULT_BACKOFF_CONFIG)
            classifier: Failure classifier (defaults to DefaultErrorClassifier)
            sleep: Async sleep function, injectable for tests
            rng: Random source for jitter, injectable for tests
            metrics_collector: Optional sink for retry counters
        """
        self.config = config or DEFAULT_BACKOFF_CONFIG
        self.classifier: ClassifierProtocol = classifier or DefaultErrorClassifier()
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._rng = rng
        self._metrics_collector = metrics_collector

    def next_delay_ms(
        self, next_attempt: int, classification: ErrorClassification
    ) -> float:
        """Delay before ``next_attempt`` given the classification of the last failure."""
        if classification.retry_after_ms is not None:
            return hint_delay_ms(classification.retry_after_ms, self.config)
        return compute_delay_ms(next_attempt, self.config, self._rng)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "anonymous",
    ) -> T:
        """
        Execute ``operation`` with retries.

        Args:
            operation: Zero-argument async callable
            operation_name: Label used in logs and in RetryExhaustedError

        Returns:
            The operation's result

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error
            Exception: The original error for fatal or permission-denied failures
        """
        total_attempts = self.config.max_retries + 1
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()

            except asyncio.CancelledError:
                raise  # Always re-raise for graceful shutdown

            except Exception as e:
                classification = self.classifier.classify(e)
                retries_left = total_attempts - attempt

                if not classification.is_retryable:
                    logger.debug(
                        f"{operation_name} failed with non-retryable error "
                        f"({classification.reason}) on attempt {attempt}",
                        extra={
                            "operation_name": operation_name,
                            "attempt": attempt,
                            "retries_left": retries_left,
                            "status_code": classification.status_code,
                            "delay_ms": None,
                        },
                    )
                    raise

                if retries_left == 0:
                    raise self._exhausted(
                        e, classification, total_attempts, operation_name
                    ) from e

                delay_ms = self.next_delay_ms(attempt + 1, classification)
                logger.warning(
                    f"{operation_name} failed ({classification.reason}), "
                    f"retrying in {delay_ms:.0f}ms, {retries_left} retries remaining",
                    extra={
                        "operation_name": operation_name,
                        "attempt": attempt,
                        "retries_left": retries_left,
                        "status_code": classification.status_code,
                        "delay_ms": round(delay_ms),
                    },
                )
                if self._metrics_collector is not None:
                    self._metrics_collector.inc_counter(
                        RETRIES_TOTAL, labels={"reason": classification.reason}
                    )
                if delay_ms > 0:
                    await self._sleep(delay_ms / MS_PER_SECOND)

    def _exhausted(
        self,
        last_error: Exception,
        classification: ErrorClassification,
        total_attempts: int,
        operation_name: str,
    ) -> RetryExhaustedError:
        """Log the final failure and build the error raised to the caller."""
        status_code = classification.status_code
        logger.error(
            f"{operation_name} failed after {total_attempts} attempts: {last_error}",
            extra={
                "operation_name": operation_name,
                "attempt": total_attempts,
                "retries_left": 0,
                "status_code": status_code,
                "delay_ms": None,
            },
        )
        if self._metrics_collector is not None:
            self._metrics_collector.inc_counter(RETRIES_EXHAUSTED_TOTAL)
        return RetryExhaustedError(
            f"{operation_name} failed after {total_attempts} attempts: {last_error}",
            cause=last_error,
            attempts=total_attempts,
            operation_name=operation_name,
            status_code=status_code,
        )


async def with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: BackoffConfig | None = None,
    operation_name: str = "anonymous",
) -> T:
    """
    Execute ``operation`` with exponential backoff.

    Convenience wrapper around a one-off :class:`BackoffEngine`.

    Example:
        >>> result = await with_backoff(
        ...     lambda: llm.chat.completions.create(...),
        ...     BackoffConfig(max_retries=3, initial_delay_ms=2_000),
        ... )
    """
    return await BackoffEngine(config).run(operation, operation_name=operation_name)


__all__ = [
    "BackoffEngine",
    "compute_delay_ms",
    "hint_delay_ms",
    "with_backoff",
]
