# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocol for call invocation."""

from typing import Any, Protocol, runtime_checkable

from ..types.call import CallDescriptor


@runtime_checkable
class CallInvokerProtocol(Protocol):
    """
    Anything that can execute a CallDescriptor.

    Both ``CredentialFallbackGateway.invoke`` and ``CallDispatcher.dispatch``
    satisfy this protocol, so a ``WrappedClient`` can be built on top of
    either layer.
    """

    async def __call__(self, call: CallDescriptor[Any, Any]) -> Any:
        """Execute the call and return its result."""
        ...
