# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Protocol definitions for call gateway components.

Available protocols:
- ClassifierProtocol: Interface for classifying failed calls
- CallInvokerProtocol: Interface for executing call descriptors
"""

from .classifier import ClassifierProtocol
from .invoker import CallInvokerProtocol

__all__ = [
    "CallInvokerProtocol",
    "ClassifierProtocol",
]
