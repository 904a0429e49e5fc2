# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Failure classification types used by the backoff engine and fallback gateway."""

from dataclasses import dataclass
from enum import Enum


class FailureKind(Enum):
    """How the resilience layer should react to a failed call.

    - RETRYABLE: throttling, 5xx, or transient network failure. Retried with
      backoff, honoring any provider wait hint.
    - PERMISSION_DENIED: the credential was rejected (401/403). Eligible for
      one credential fallback, otherwise terminal.
    - FATAL: anything else. Re-raised immediately.
    """

    RETRYABLE = "retryable"
    PERMISSION_DENIED = "permission_denied"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorClassification:
    """
    Result of classifying a failed call.

    Attributes:
        kind: The failure kind
        reason: Short machine-friendly reason (e.g. "rate_limited", "server_error")
        status_code: HTTP status code found on the error, if any
        retry_after_ms: Provider-supplied wait hint in milliseconds, if any
    """

    kind: FailureKind
    reason: str
    status_code: int | None = None
    retry_after_ms: float | None = None

    @property
    def is_retryable(self) -> bool:
        return self.kind is FailureKind.RETRYABLE

    @property
    def is_permission_denied(self) -> bool:
        return self.kind is FailureKind.PERMISSION_DENIED


__all__ = ["ErrorClassification", "FailureKind"]
