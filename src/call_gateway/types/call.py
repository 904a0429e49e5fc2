# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Call descriptor types for the dispatcher and fallback gateway.

This module defines the immutable description of an outbound call that
collaborators hand to the dispatcher.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

ClientT = TypeVar("ClientT")
ResultT = TypeVar("ResultT")


@dataclass(frozen=True)
class CallDescriptor(Generic[ClientT, ResultT]):
    """
    Immutable description of one outbound API call.

    The operation receives the credential-bound client chosen by the fallback
    gateway, so the identical call can be re-issued against the secondary
    credential without the collaborator knowing.

    Attributes:
        operation_name: ``"<namespace>.<method>"`` for namespaced client calls
            (e.g. ``"repos.get_content"``), or a bare label for plain calls.
            A bare label is both namespace and method
        operation: Async callable taking the client and returning the result
        uses_secondary_credential: Route straight to the secondary credential,
            skipping the primary and the fallback step

    Example:
        >>> call = CallDescriptor(
        ...     "pulls.create",
        ...     lambda gh: gh.pulls.create(owner="acme", repo="docs", title="..."),
        ... )
    """

    operation_name: str
    operation: Callable[[ClientT], Awaitable[ResultT]]
    uses_secondary_credential: bool = False

    def __post_init__(self) -> None:
        if not self.operation_name:
            raise ValueError("operation_name must be a non-empty string")
        if not callable(self.operation):
            raise TypeError("operation must be callable")

    @property
    def namespace(self) -> str:
        """
        Operation group, i.e. the part of ``operation_name`` before the first dot.

        A name without a dot is its own namespace, so ``"translate"`` is only
        eligible for credential fallback if ``"translate"`` is allow-listed.
        """
        return self.operation_name.split(".", 1)[0]

    @property
    def method(self) -> str:
        """Method name, i.e. the part of ``operation_name`` after the first dot."""
        return self.operation_name.split(".", 1)[-1]


def plain_call(
    operation_name: str, operation: Callable[[], Awaitable[Any]]
) -> CallDescriptor[Any, Any]:
    """
    Build a descriptor for a zero-argument operation that ignores the client.

    Useful for calls whose client is already bound (e.g. a language-model SDK
    with a single credential).
    """

    async def _run(_client: Any) -> Any:
        return await operation()

    return CallDescriptor(operation_name, _run)


__all__ = ["CallDescriptor", "ClientT", "ResultT", "plain_call"]
