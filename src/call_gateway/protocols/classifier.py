# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocol for failure classification."""

from typing import Protocol, runtime_checkable

from ..types.classification import ErrorClassification


@runtime_checkable
class ClassifierProtocol(Protocol):
    """
    Protocol for failure classification.

    Implement this to teach the backoff engine and fallback gateway about a
    provider whose errors do not follow the usual status-code conventions.
    """

    def classify(self, error: BaseException) -> ErrorClassification:
        """
        Classify a failed call.

        Args:
            error: Exception raised by the operation

        Returns:
            ErrorClassification with kind, reason and any wait hint
        """
        ...
