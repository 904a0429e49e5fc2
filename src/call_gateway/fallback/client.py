# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Explicitly decorated client facade.

WrappedClient turns an enumerated set of ``namespace.method`` operations into
async functions that route through an invoker (the fallback gateway or the
dispatcher). Operations are built once at construction; nothing is
intercepted dynamically.

Example:
    >>> client = WrappedClient(
    ...     dispatcher.dispatch,
    ...     {"repos": ["get", "get_content"], "pulls": ["create"], "request": []},
    ... )
    >>> repo = await client.repos.get(owner="acme", repo="docs")
    >>> same = await client.operation("repos", "get")(owner="acme", repo="docs")
    >>> raw = await client.request("GET /rate_limit")
"""

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from types import SimpleNamespace
from typing import Any

from ..exceptions import ConfigurationError
from ..protocols.invoker import CallInvokerProtocol
from ..types.call import CallDescriptor
from .gateway import FALLBACK_NAMESPACES

WrappedOperation = Callable[..., Awaitable[Any]]


class WrappedClient:
    """
    Facade exposing allow-listed client operations through an invoker.

    Each namespace becomes an attribute holding its wrapped methods. A
    namespace listed with no methods is treated as a callable on the client
    itself (e.g. ``request``).
    """

    def __init__(
        self,
        invoke: CallInvokerProtocol,
        operations: Mapping[str, Iterable[str]],
        namespaces: Iterable[str] = FALLBACK_NAMESPACES,
    ):
        """
        Build wrapped operations.

        Args:
            invoke: Async callable executing a CallDescriptor
            operations: ``namespace -> method names`` to expose
            namespaces: Allow-list the namespaces must belong to

        Raises:
            ConfigurationError: For namespaces outside the allow-list or
                method names that are not identifiers
        """
        self._invoke = invoke
        self._operations: dict[str, WrappedOperation] = {}
        allowed = frozenset(namespaces)

        for namespace, methods in operations.items():
            if namespace not in allowed:
                raise ConfigurationError(
                    f"Namespace {namespace!r} is not eligible for credential "
                    f"fallback (allowed: {', '.join(sorted(allowed))})"
                )

            method_names = list(methods)
            if not method_names:
                wrapped = self._wrap(namespace, None)
                self._operations[namespace] = wrapped
                setattr(self, namespace, wrapped)
                continue

            group = SimpleNamespace()
            for method in method_names:
                if not method.isidentifier():
                    raise ConfigurationError(
                        f"Invalid method name {method!r} in namespace {namespace!r}"
                    )
                wrapped = self._wrap(namespace, method)
                self._operations[f"{namespace}.{method}"] = wrapped
                setattr(group, method, wrapped)
            setattr(self, namespace, group)

    @property
    def operation_names(self) -> list[str]:
        return sorted(self._operations)

    def operation(self, namespace: str, method: str | None = None) -> WrappedOperation:
        """
        Look up a wrapped operation.

        Raises:
            ConfigurationError: If the operation was not declared
        """
        key = namespace if method is None else f"{namespace}.{method}"
        try:
            return self._operations[key]
        except KeyError:
            raise ConfigurationError(f"Operation {key!r} was not wrapped") from None

    def _wrap(self, namespace: str, method: str | None) -> WrappedOperation:
        operation_name = namespace if method is None else f"{namespace}.{method}"

        async def wrapped(*args: Any, **kwargs: Any) -> Any:
            async def run(client: Any) -> Any:
                target = getattr(client, namespace)
                if method is not None:
                    target = getattr(target, method)
                result = target(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result

            return await self._invoke(CallDescriptor(operation_name, run))

        wrapped.__name__ = method or namespace
        wrapped.__qualname__ = f"WrappedClient.{operation_name}"
        return wrapped


__all__ = ["WrappedClient"]
