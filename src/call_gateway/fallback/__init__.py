# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Credential fallback for permission-denied calls."""

from .client import WrappedClient
from .gateway import FALLBACK_NAMESPACES, CredentialFallbackGateway

__all__ = [
    "FALLBACK_NAMESPACES",
    "CredentialFallbackGateway",
    "WrappedClient",
]
