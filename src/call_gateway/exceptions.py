# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Exception classes for the call gateway library.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from GatewayError, making it easy to catch every
error raised by the resilience layer itself with a single except clause.

Errors raised by the wrapped operations (SDK exceptions, transport errors)
are never converted into these types on the way out, except when a recovery
path is exhausted: retries (RetryExhaustedError) or the credential fallback
(PermissionDeniedError).
"""


class GatewayError(Exception):
    """Base exception for all call gateway errors.

    Example:
        try:
            await dispatcher.dispatch(call)
        except GatewayError as e:
            logger.error(f"Call gateway error: {e}")
    """

    pass


class UpstreamError(GatewayError):
    """Base class for typed errors describing an upstream API failure.

    Transports that prefer typed errors over SDK exceptions can raise the
    subclasses below; the backoff classifier understands them directly.

    Attributes:
        status_code: HTTP status code returned by the upstream API, if any.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(UpstreamError):
    """Raised when the provider throttles a call (HTTP 429 or equivalent).

    Attributes:
        retry_after: Provider-supplied wait time in seconds, if known.

    Example:
        raise RateLimitedError("quota exhausted", retry_after=12.0)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        retry_after: float | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class ServerError(UpstreamError):
    """Raised for HTTP 5xx responses. Retried with exponential backoff."""

    def __init__(self, message: str, status_code: int | None = 500):
        super().__init__(message, status_code=status_code)


class NetworkError(UpstreamError):
    """Raised for transport-level failures (reset, timeout, DNS, refused)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=None)


class ClientError(UpstreamError):
    """Raised for 4xx responses other than 401/403/429. Never retried."""

    def __init__(self, message: str, status_code: int | None = 400):
        super().__init__(message, status_code=status_code)


class PermissionDeniedError(UpstreamError):
    """Raised when a credential is rejected (HTTP 401/403).

    The fallback gateway raises this, chained from the secondary client's
    error, when the secondary credential is denied as well.

    Attributes:
        operation_name: The ``namespace.method`` that was denied.
        cause: The underlying error, when this wraps another exception.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = 403,
        operation_name: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, status_code=status_code)
        self.operation_name = operation_name
        self.cause = cause


class RetryExhaustedError(GatewayError):
    """Raised when an operation still fails after all retry attempts.

    The last error is available both as ``cause`` and as ``__cause__``
    (the engine raises this with ``raise ... from last_error``).

    Attributes:
        operation_name: Name of the operation that was retried.
        attempts: Total number of attempts made (max_retries + 1).
        cause: The error raised by the final attempt.
        status_code: Status code of the final error, if it had one.

    Example:
        try:
            await dispatcher.dispatch(call)
        except RetryExhaustedError as e:
            logger.error(f"{e.operation_name} gave up after {e.attempts} attempts")
    """

    def __init__(
        self,
        message: str,
        cause: BaseException,
        attempts: int,
        operation_name: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.cause = cause
        self.attempts = attempts
        self.operation_name = operation_name
        self.status_code = status_code


class QueueCancelledError(GatewayError):
    """Raised for a queued call discarded by ``clear_queue()`` or ``shutdown()``.

    Only calls that were still waiting for admission receive this error;
    calls that were already running are never preempted.

    Attributes:
        scheduler_name: Name of the scheduler that discarded the entry.
        entry_id: Identifier of the discarded queue entry, if known.
    """

    def __init__(
        self,
        message: str,
        scheduler_name: str | None = None,
        entry_id: str | None = None,
    ):
        super().__init__(message)
        self.scheduler_name = scheduler_name
        self.entry_id = entry_id


class SchedulerClosedError(QueueCancelledError):
    """Raised when a call is submitted to a scheduler that has been shut down."""

    pass


class ConfigurationError(GatewayError):
    """Raised when configuration is invalid.

    Common causes include:
    - Unknown scheduler preset names
    - Wrapping operations outside the fallback namespace allow-list
    - Malformed operation names
    """

    pass


__all__ = [
    "ClientError",
    "ConfigurationError",
    "GatewayError",
    "NetworkError",
    "PermissionDeniedError",
    "QueueCancelledError",
    "RateLimitedError",
    "RetryExhaustedError",
    "SchedulerClosedError",
    "ServerError",
    "UpstreamError",
]
