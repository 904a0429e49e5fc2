# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Failure classification for outbound calls.

Errors are inspected by duck typing so the classifier works with the
exceptions of common Python SDKs without importing them:

- status code: ``status_code``, ``status`` or ``response.status_code``
- headers: ``headers`` or ``response.headers``
- explicit hints: ``retry_after`` / ``retry_after_seconds`` (seconds) or
  ``retry_after_ms``

Provider wait hints are read from ``retry-after`` (seconds or HTTP date) and
``x-ratelimit-reset`` (Unix timestamp in seconds).
"""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from collections.abc import Mapping
from email.utils import parsedate_to_datetime
from typing import Any

from ..exceptions import (
    ClientError,
    NetworkError,
    PermissionDeniedError,
    QueueCancelledError,
    RateLimitedError,
    RetryExhaustedError,
    ServerError,
)
from ..types.classification import ErrorClassification, FailureKind

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1_000

TOO_MANY_REQUESTS = 429
UNAUTHORIZED = 401
FORBIDDEN = 403

# Transport error markers as they appear in error messages
NETWORK_ERROR_PATTERNS: tuple[str, ...] = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ECONNREFUSED",
    "EAI_AGAIN",
)

NETWORK_MESSAGE_PATTERNS: tuple[str, ...] = (
    "connection reset",
    "connection refused",
    "connection aborted",
    "timed out",
    "timeout",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname",
    "getaddrinfo failed",
)

NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    ConnectionResetError,
    ConnectionRefusedError,
    ConnectionAbortedError,
    TimeoutError,
    asyncio.TimeoutError,
    socket.gaierror,
)

# Exception class-name fragments used by httpx, aiohttp, requests and friends
NETWORK_TYPE_NAME_PATTERNS: tuple[str, ...] = (
    "timeout",
    "connecterror",
    "connectionerror",
    "connecttimeout",
    "networkerror",
)

# Provider phrasing for throttling when no status code is attached
RATE_LIMIT_MESSAGE_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "ratelimit",
    "too many requests",
    "quota",
    "requests per",
    "free-models-per-",
)


def get_status_code(error: BaseException) -> int | None:
    """Return the HTTP status code attached to ``error``, if any."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        status = _coerce_status(value)
        if status is not None:
            return status

    response = getattr(error, "response", None)
    if response is not None:
        return _coerce_status(getattr(response, "status_code", None))
    return None


def get_headers(error: BaseException) -> Mapping[str, Any] | None:
    """Return response headers attached to ``error``, if any."""
    headers = getattr(error, "headers", None)
    if isinstance(headers, Mapping):
        return headers

    response = getattr(error, "response", None)
    if response is not None:
        headers = getattr(response, "headers", None)
        if isinstance(headers, Mapping):
            return headers
    return None


def extract_retry_after_ms(
    error: BaseException, now: float | None = None
) -> float | None:
    """
    Extract a provider-supplied wait hint from ``error``.

    Explicit attributes take precedence over headers. ``retry-after`` takes
    precedence over ``x-ratelimit-reset``.

    Args:
        error: The failed call's exception
        now: Current Unix time in seconds (defaults to ``time.time()``)

    Returns:
        Wait time in milliseconds (unpadded, unclamped), or None
    """
    for attr in ("retry_after", "retry_after_seconds"):
        value = _coerce_float(getattr(error, attr, None))
        if value is not None and value >= 0:
            return value * MS_PER_SECOND

    value = _coerce_float(getattr(error, "retry_after_ms", None))
    if value is not None and value >= 0:
        return value

    headers = get_headers(error)
    if not headers:
        return None

    current = time.time() if now is None else now

    retry_after = _header(headers, "retry-after")
    if retry_after is not None:
        seconds = _coerce_float(retry_after)
        if seconds is not None and seconds >= 0:
            logger.debug(f"Using retry-after header for delay: {seconds}s")
            return seconds * MS_PER_SECOND
        try:
            retry_at = parsedate_to_datetime(str(retry_after))
        except (TypeError, ValueError):
            logger.warning(f"Invalid retry-after header: {retry_after}")
        else:
            return max(0.0, retry_at.timestamp() - current) * MS_PER_SECOND

    reset = _header(headers, "x-ratelimit-reset")
    if reset is not None:
        reset_timestamp = _coerce_float(reset)
        if reset_timestamp is None:
            logger.warning(f"Invalid x-ratelimit-reset header: {reset}")
            return None
        delay_ms = (reset_timestamp - current) * MS_PER_SECOND
        if delay_ms > 0:
            logger.debug(f"Using x-ratelimit-reset header for delay: {delay_ms:.0f}ms")
            return delay_ms

    return None


def is_network_error(error: BaseException) -> bool:
    """Check whether ``error`` looks like a transient transport failure."""
    if isinstance(error, (NetworkError, *NETWORK_ERROR_TYPES)):
        return True

    type_name = type(error).__name__.lower()
    if any(pattern in type_name for pattern in NETWORK_TYPE_NAME_PATTERNS):
        return True

    message = str(error)
    if any(pattern in message for pattern in NETWORK_ERROR_PATTERNS):
        return True

    lowered = message.lower()
    return any(pattern in lowered for pattern in NETWORK_MESSAGE_PATTERNS)


def is_rate_limit_message(message: str) -> bool:
    """Check whether an error message reads like provider throttling."""
    lowered = message.lower()
    return any(pattern in lowered for pattern in RATE_LIMIT_MESSAGE_PATTERNS)


def classify_error(
    error: BaseException, now: float | None = None
) -> ErrorClassification:
    """
    Classify a failed call.

    Args:
        error: The exception raised by the operation
        now: Current Unix time in seconds, for reset-timestamp hints

    Returns:
        ErrorClassification with the failure kind and any wait hint
    """
    # Errors produced by the resilience layer itself are terminal
    if isinstance(error, (RetryExhaustedError, QueueCancelledError)):
        return ErrorClassification(FailureKind.FATAL, "gateway_error")

    if isinstance(error, PermissionDeniedError):
        return ErrorClassification(
            FailureKind.PERMISSION_DENIED,
            "permission_denied",
            status_code=error.status_code,
        )

    status = get_status_code(error)

    if isinstance(error, RateLimitedError) or status == TOO_MANY_REQUESTS:
        return ErrorClassification(
            FailureKind.RETRYABLE,
            "rate_limited",
            status_code=status,
            retry_after_ms=extract_retry_after_ms(error, now=now),
        )

    if isinstance(error, ServerError) or (status is not None and 500 <= status < 600):
        return ErrorClassification(
            FailureKind.RETRYABLE,
            "server_error",
            status_code=status,
            retry_after_ms=extract_retry_after_ms(error, now=now),
        )

    if status in (UNAUTHORIZED, FORBIDDEN):
        return ErrorClassification(
            FailureKind.PERMISSION_DENIED, "permission_denied", status_code=status
        )

    if isinstance(error, ClientError) or (status is not None and 400 <= status < 500):
        return ErrorClassification(FailureKind.FATAL, "client_error", status_code=status)

    if is_network_error(error):
        return ErrorClassification(FailureKind.RETRYABLE, "network_error")

    if status is None and is_rate_limit_message(str(error)):
        return ErrorClassification(
            FailureKind.RETRYABLE,
            "rate_limited",
            retry_after_ms=extract_retry_after_ms(error, now=now),
        )

    return ErrorClassification(FailureKind.FATAL, "application_error", status_code=status)


class DefaultErrorClassifier:
    """Classifier object wrapping :func:`classify_error` for injection."""

    def classify(self, error: BaseException) -> ErrorClassification:
        return classify_error(error)


def _coerce_status(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    # http.HTTPStatus and similar int-like enums
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _header(headers: Mapping[str, Any], name: str) -> Any | None:
    value = headers.get(name)
    if value is not None:
        return value
    for key, candidate in headers.items():
        if isinstance(key, str) and key.lower() == name:
            return candidate
    return None


__all__ = [
    "NETWORK_ERROR_PATTERNS",
    "RATE_LIMIT_MESSAGE_PATTERNS",
    "DefaultErrorClassifier",
    "classify_error",
    "extract_retry_after_ms",
    "get_headers",
    "get_status_code",
    "is_network_error",
    "is_rate_limit_message",
]
