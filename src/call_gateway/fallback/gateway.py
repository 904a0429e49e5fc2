# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""
Credential fallback gateway.

Source-control APIs commonly accept two kinds of credential: an installation
token with narrowly scoped permissions and a personal token with broader
ones. The gateway issues each call with the primary credential and, when the
call is denied (401/403), re-issues the identical call once with the
secondary credential.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Generic

from ..backoff.classifier import DefaultErrorClassifier
from ..exceptions import ConfigurationError, PermissionDeniedError
from ..observability.constants import FALLBACK_DENIALS_TOTAL, FALLBACKS_TOTAL
from ..observability.protocols import MetricsCollectorProtocol
from ..protocols.classifier import ClassifierProtocol
from ..types.call import CallDescriptor, ClientT

logger = logging.getLogger(__name__)

FALLBACK_NAMESPACES: frozenset[str] = frozenset(
    {
        "repos",  # repository contents, forks, branches
        "pulls",  # pull requests
        "git",  # refs, trees, commits
        "issues",  # issues and comments
        "rate_limit",  # quota introspection
        "request",  # generic request entry point
    }
)
"""Operation groups eligible for credential fallback."""


class CredentialFallbackGateway(Generic[ClientT]):
    """
    Runs calls against the primary client with one secondary-credential retry.

    Fallback happens at most once per ``invoke()`` and only when:
    - the failure classifies as PERMISSION_DENIED
    - the call's namespace is in the allow-list
    - a secondary client is configured

    Any other failure propagates unchanged.

    Example:
        >>> gateway = CredentialFallbackGateway(app_client, secondary=pat_client)
        >>> repo = await gateway.invoke(
        ...     CallDescriptor("repos.get", lambda gh: gh.repos.get(owner="acme", repo="docs"))
        ... )
    """

    def __init__(
        self,
        primary: ClientT,
        secondary: ClientT | None = None,
        namespaces: Iterable[str] = FALLBACK_NAMESPACES,
        classifier: ClassifierProtocol | None = None,
        metrics_collector: MetricsCollectorProtocol | None = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.namespaces = frozenset(namespaces)
        self.classifier: ClassifierProtocol = classifier or DefaultErrorClassifier()
        self._metrics_collector = metrics_collector

    @property
    def has_fallback(self) -> bool:
        return self.secondary is not None

    def supports(self, namespace: str) -> bool:
        """Whether calls in ``namespace`` may fall back to the secondary credential."""
        return namespace in self.namespaces

    async def invoke(self, call: CallDescriptor[ClientT, Any]) -> Any:
        """
        Execute ``call`` with credential fallback.

        Raises:
            PermissionDeniedError: If the secondary credential is denied too,
                chained from the secondary client's error
            ConfigurationError: If the call requires the secondary credential
                and none is configured
            Exception: Any other error raised by the operation, unchanged
        """
        if call.uses_secondary_credential:
            if self.secondary is None:
                raise ConfigurationError(
                    f"{call.operation_name} requires a secondary credential "
                    f"but none is configured"
                )
            return await call.operation(self.secondary)

        try:
            return await call.operation(self.primary)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._should_fall_back(call, e):
                raise
            status_code = self.classifier.classify(e).status_code

        logger.warning(
            f"Primary credential denied for {call.operation_name} "
            f"(status {status_code}), retrying with secondary credential",
            extra={
                "namespace": call.namespace,
                "method": call.method,
                "operation_name": call.operation_name,
                "status_code": status_code,
            },
        )
        if self._metrics_collector is not None:
            self._metrics_collector.inc_counter(
                FALLBACKS_TOTAL, labels={"namespace": call.namespace}
            )

        return await self._invoke_secondary(call)

    def _should_fall_back(self, call: CallDescriptor[ClientT, Any], error: Exception) -> bool:
        if self.secondary is None or not self.supports(call.namespace):
            return False
        return self.classifier.classify(error).is_permission_denied

    async def _invoke_secondary(self, call: CallDescriptor[ClientT, Any]) -> Any:
        try:
            return await call.operation(self.secondary)  # type: ignore[arg-type]
        except asyncio.CancelledError:
            raise
        except Exception as e:
            classification = self.classifier.classify(e)
            if not classification.is_permission_denied:
                raise

            if self._metrics_collector is not None:
                self._metrics_collector.inc_counter(
                    FALLBACK_DENIALS_TOTAL, labels={"namespace": call.namespace}
                )
            raise PermissionDeniedError(
                f"{call.operation_name} denied for both primary and secondary "
                f"credentials: {e}",
                status_code=classification.status_code,
                operation_name=call.operation_name,
                cause=e,
            ) from e


__all__ = ["FALLBACK_NAMESPACES", "CredentialFallbackGateway"]
