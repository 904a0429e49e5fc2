"""Tests for CallDispatcher and create_dispatcher."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from call_gateway.backoff.config import (
    DEFAULT_BACKOFF_CONFIG,
    SOURCE_CONTROL_BACKOFF_CONFIG,
    BackoffConfig,
)
from call_gateway.dispatcher import (
    BACKOFF_PRESETS,
    CallDispatcher,
    DispatcherConfig,
    create_dispatcher,
)
from call_gateway.exceptions import (
    ConfigurationError,
    PermissionDeniedError,
    RetryExhaustedError,
    SchedulerClosedError,
)
from call_gateway.observability.collector import (
    get_metrics_collector,
    reset_metrics_collector,
)
from call_gateway.observability.constants import FALLBACKS_TOTAL, RETRIES_TOTAL
from call_gateway.scheduler.config import SCHEDULER_PRESETS, SchedulerConfig
from call_gateway.types.call import CallDescriptor

FAST_BACKOFF = BackoffConfig(
    initial_delay_ms=1, max_delay_ms=1, max_retries=2, jitter=False
)


class HTTPStatusError(Exception):
    def __init__(self, status):
        super().__init__(f"HTTP {status}")
        self.status = status


def fast_config(**overrides):
    options = {
        "scheduler": SchedulerConfig(max_concurrent=2),
        "backoff": FAST_BACKOFF,
    }
    options.update(overrides)
    return DispatcherConfig(**options)


def make_client(**methods):
    client = Mock()
    for name, mock in methods.items():
        namespace, method = name.split("__")
        setattr(getattr(client, namespace), method, mock)
    return client


def repos_get():
    return CallDescriptor("repos.get", lambda gh: gh.repos.get(owner="acme", repo="docs"))


class TestDispatcherConfig:
    def test_defaults(self):
        config = DispatcherConfig()
        assert config.use_secondary_credential is True
        assert config.metrics_enabled is False
        assert config.scheduler is None
        assert config.backoff is None

    def test_invalid_port(self):
        with pytest.raises(ValueError, match="prometheus_port"):
            DispatcherConfig(prometheus_port=0)

    def test_empty_namespaces(self):
        with pytest.raises(ValueError, match="fallback_namespaces"):
            DispatcherConfig(fallback_namespaces=frozenset())


class TestCreateDispatcher:
    @pytest.mark.parametrize("target", ["github_api", "free_llm", "paid_llm"])
    def test_presets(self, target):
        dispatcher = create_dispatcher(target, Mock())

        assert isinstance(dispatcher, CallDispatcher)
        assert dispatcher.name == target
        assert dispatcher.scheduler.config == SCHEDULER_PRESETS[target]
        assert dispatcher.backoff.config == BACKOFF_PRESETS[target]

    def test_backoff_presets(self):
        assert BACKOFF_PRESETS["github_api"] is SOURCE_CONTROL_BACKOFF_CONFIG
        assert BACKOFF_PRESETS["free_llm"] is DEFAULT_BACKOFF_CONFIG
        assert BACKOFF_PRESETS["paid_llm"] is DEFAULT_BACKOFF_CONFIG

    def test_unknown_target(self):
        with pytest.raises(ConfigurationError, match="Unknown scheduler preset"):
            create_dispatcher("carrier_pigeon", Mock())

    def test_custom_target_with_scheduler_config(self):
        dispatcher = create_dispatcher("translation", Mock(), config=fast_config())

        assert dispatcher.name == "translation"
        assert dispatcher.scheduler.config.max_concurrent == 2
        assert dispatcher.backoff.config is FAST_BACKOFF

    def test_secondary_enables_fallback(self):
        assert create_dispatcher("github_api", Mock(), secondary=Mock()).gateway.has_fallback
        assert not create_dispatcher("github_api", Mock()).gateway.has_fallback

    def test_secondary_disabled_by_config(self):
        dispatcher = create_dispatcher(
            "github_api",
            Mock(),
            secondary=Mock(),
            config=DispatcherConfig(use_secondary_credential=False),
        )
        assert not dispatcher.gateway.has_fallback


class TestDispatch:
    @pytest.mark.asyncio
    async def test_success(self):
        client = make_client(repos__get=AsyncMock(return_value={"name": "docs"}))

        async with create_dispatcher("github_api", client, config=fast_config()) as dispatcher:
            assert await dispatcher.dispatch(repos_get()) == {"name": "docs"}
            assert dispatcher.get_metrics().total_requests == 1

    @pytest.mark.asyncio
    async def test_each_retry_is_admitted_by_the_scheduler(self):
        """Every attempt goes back through the queue and is counted once."""
        get = AsyncMock(side_effect=[HTTPStatusError(503), HTTPStatusError(429), "ok"])
        client = make_client(repos__get=get)

        async with create_dispatcher("github_api", client, config=fast_config()) as dispatcher:
            assert await dispatcher.dispatch(repos_get()) == "ok"

            metrics = dispatcher.get_metrics()
            assert get.await_count == 3
            assert metrics.total_requests == 3
            assert metrics.failed_requests == 2
            assert metrics.last_error == "HTTPStatusError: HTTP 429"

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        get = AsyncMock(side_effect=HTTPStatusError(500))
        client = make_client(repos__get=get)

        async with create_dispatcher("github_api", client, config=fast_config()) as dispatcher:
            with pytest.raises(RetryExhaustedError) as exc_info:
                await dispatcher.dispatch(repos_get())

        error = exc_info.value
        assert error.attempts == 3
        assert error.operation_name == "repos.get"
        assert error.status_code == 500
        assert get.await_count == 3

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self):
        error = HTTPStatusError(404)
        get = AsyncMock(side_effect=error)

        async with create_dispatcher(
            "github_api", make_client(repos__get=get), config=fast_config()
        ) as dispatcher:
            with pytest.raises(HTTPStatusError) as exc_info:
                await dispatcher.dispatch(repos_get())

        assert exc_info.value is error
        assert get.await_count == 1

    @pytest.mark.asyncio
    async def test_fallback_inside_one_attempt(self):
        primary = make_client(repos__get=AsyncMock(side_effect=HTTPStatusError(403)))
        secondary = make_client(repos__get=AsyncMock(return_value="via secondary"))

        async with create_dispatcher(
            "github_api", primary, secondary=secondary, config=fast_config()
        ) as dispatcher:
            assert await dispatcher.dispatch(repos_get()) == "via secondary"
            assert dispatcher.get_metrics().total_requests == 1

        primary.repos.get.assert_awaited_once()
        secondary.repos.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_after_failed_fallback(self):
        """A retryable secondary failure is retried from the primary again."""
        primary = make_client(repos__get=AsyncMock(side_effect=HTTPStatusError(403)))
        secondary = make_client(
            repos__get=AsyncMock(side_effect=[HTTPStatusError(502), "recovered"])
        )

        async with create_dispatcher(
            "github_api", primary, secondary=secondary, config=fast_config()
        ) as dispatcher:
            assert await dispatcher.dispatch(repos_get()) == "recovered"

        assert primary.repos.get.await_count == 2
        assert secondary.repos.get.await_count == 2

    @pytest.mark.asyncio
    async def test_double_denial_is_not_retried(self):
        primary = make_client(repos__get=AsyncMock(side_effect=HTTPStatusError(403)))
        secondary = make_client(repos__get=AsyncMock(side_effect=HTTPStatusError(403)))

        async with create_dispatcher(
            "github_api", primary, secondary=secondary, config=fast_config()
        ) as dispatcher:
            with pytest.raises(PermissionDeniedError):
                await dispatcher.dispatch(repos_get())

        assert primary.repos.get.await_count == 1
        assert secondary.repos.get.await_count == 1

    @pytest.mark.asyncio
    async def test_no_fallback_when_disabled(self):
        primary = make_client(repos__get=AsyncMock(side_effect=HTTPStatusError(403)))
        secondary = make_client(repos__get=AsyncMock())

        async with create_dispatcher(
            "github_api",
            primary,
            secondary=secondary,
            config=fast_config(use_secondary_credential=False),
        ) as dispatcher:
            with pytest.raises(HTTPStatusError):
                await dispatcher.dispatch(repos_get())

        secondary.repos.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrency_limit_applies_across_callers(self):
        running = 0
        peak = 0

        async def fetch(**kwargs):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return kwargs["repo"]

        client = make_client(repos__get=fetch)
        async with create_dispatcher("github_api", client, config=fast_config()) as dispatcher:
            calls = [
                CallDescriptor(
                    "repos.get", lambda gh, repo=f"repo-{i}": gh.repos.get(owner="acme", repo=repo)
                )
                for i in range(6)
            ]
            results = await asyncio.gather(*(dispatcher.dispatch(c) for c in calls))

        assert results == [f"repo-{i}" for i in range(6)]
        assert peak == 2

    @pytest.mark.asyncio
    async def test_dispatch_after_shutdown(self):
        dispatcher = create_dispatcher("github_api", Mock(), config=fast_config())
        await dispatcher.shutdown()

        with pytest.raises(SchedulerClosedError):
            await dispatcher.dispatch(repos_get())


class TestWrapClient:
    @pytest.mark.asyncio
    async def test_wrapped_operations_are_dispatched(self):
        primary = make_client(
            pulls__create=AsyncMock(side_effect=[HTTPStatusError(500), {"number": 12}])
        )

        async with create_dispatcher("github_api", primary, config=fast_config()) as dispatcher:
            client = dispatcher.wrap_client({"pulls": ["create"]})
            pull = await client.pulls.create(owner="acme", repo="docs", title="Translate")

            assert pull == {"number": 12}
            assert dispatcher.get_metrics().total_requests == 2

    def test_namespaces_follow_config(self):
        dispatcher = create_dispatcher(
            "github_api",
            Mock(),
            config=fast_config(fallback_namespaces=frozenset({"actions"})),
        )

        assert dispatcher.wrap_client({"actions": ["list_workflows"]}).operation_names == [
            "actions.list_workflows"
        ]
        with pytest.raises(ConfigurationError):
            dispatcher.wrap_client({"repos": ["get"]})


class TestMetrics:
    @pytest.mark.asyncio
    async def test_injected_collector(self):
        collector = Mock()
        primary = make_client(repos__get=AsyncMock(side_effect=HTTPStatusError(403)))
        secondary = make_client(
            repos__get=AsyncMock(side_effect=[HTTPStatusError(503), "ok"])
        )

        async with create_dispatcher(
            "github_api",
            primary,
            secondary=secondary,
            config=fast_config(),
            metrics_collector=collector,
        ) as dispatcher:
            await dispatcher.dispatch(repos_get())

        collector.inc_counter.assert_any_call(
            RETRIES_TOTAL, labels={"reason": "server_error"}
        )
        collector.inc_counter.assert_any_call(FALLBACKS_TOTAL, labels={"namespace": "repos"})

    @pytest.mark.asyncio
    async def test_metrics_enabled_uses_global_collector(self):
        reset_metrics_collector()
        try:
            global_collector = get_metrics_collector(enable_prometheus=False)
            client = make_client(repos__get=AsyncMock(return_value="ok"))

            async with create_dispatcher(
                "github_api", client, config=fast_config(metrics_enabled=True)
            ) as dispatcher:
                await dispatcher.dispatch(repos_get())

            flat = global_collector.get_flat_metrics()
            assert flat["call_gateway_calls_scheduled_total{scheduler=github_api}"] == 1
        finally:
            reset_metrics_collector()
