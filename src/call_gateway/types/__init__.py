# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Type definitions and constants."""

from .call import CallDescriptor, plain_call
from .classification import ErrorClassification, FailureKind
from .queue import EntryState, QueueEntry

__all__ = [
    # Call types
    "CallDescriptor",
    "EntryState",
    # Classification
    "ErrorClassification",
    "FailureKind",
    # Queue types
    "QueueEntry",
    "plain_call",
]
