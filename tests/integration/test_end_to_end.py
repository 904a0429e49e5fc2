"""
End-to-end integration tests for the call gateway.

These tests drive complete call flows through create_dispatcher() against
in-memory fake clients: admission, retries, credential fallback, quota
refill and shutdown.
"""

import asyncio
import time

import pytest

from call_gateway import (
    BackoffConfig,
    CallDescriptor,
    DispatcherConfig,
    QueueCancelledError,
    SchedulerConfig,
    create_dispatcher,
)

FAST_BACKOFF = BackoffConfig(
    initial_delay_ms=1, max_delay_ms=5, max_retries=3, jitter=False, hint_buffer_ms=0
)


class HTTPStatusError(Exception):
    """Shape of the errors raised by typical HTTP client libraries."""

    def __init__(self, status, headers=None):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.headers = headers or {}


class FakeRepos:
    def __init__(self, host, token):
        self._host = host
        self._token = token

    async def get(self, owner, repo):
        self._host.calls.append(("repos.get", self._token))
        return self._host.respond(self._token, {"full_name": f"{owner}/{repo}"})

    async def create_fork(self, owner, repo):
        self._host.calls.append(("repos.create_fork", self._token))
        if self._token not in self._host.fork_tokens:
            raise HTTPStatusError(403)
        return {"full_name": f"translator/{repo}"}


class FakeSourceControl:
    """One credential's view of a source-control host."""

    def __init__(self, host, token):
        self.repos = FakeRepos(host, token)


class FakeHost:
    """Shared server state behind the fake clients."""

    def __init__(self, fork_tokens=("personal",)):
        self.calls = []
        self.fork_tokens = set(fork_tokens)
        self.failures = []

    def respond(self, token, body):
        if self.failures:
            raise self.failures.pop(0)
        return body

    def client(self, token):
        return FakeSourceControl(self, token)


class TestSourceControlFlows:
    @pytest.mark.asyncio
    async def test_installation_token_falls_back_for_forks(self):
        host = FakeHost()
        dispatcher = create_dispatcher(
            "github_api",
            host.client("installation"),
            secondary=host.client("personal"),
            config=DispatcherConfig(backoff=FAST_BACKOFF),
        )

        async with dispatcher:
            gh = dispatcher.wrap_client({"repos": ["get", "create_fork"]})
            repo = await gh.repos.get(owner="acme", repo="docs")
            fork = await gh.repos.create_fork(owner="acme", repo="docs")

        assert repo == {"full_name": "acme/docs"}
        assert fork == {"full_name": "translator/docs"}
        assert host.calls == [
            ("repos.get", "installation"),
            ("repos.create_fork", "installation"),
            ("repos.create_fork", "personal"),
        ]
        assert dispatcher.get_metrics().total_requests == 2

    @pytest.mark.asyncio
    async def test_rate_limit_hint_then_success(self):
        host = FakeHost()
        host.failures = [
            HTTPStatusError(429, headers={"Retry-After": "0"}),
            HTTPStatusError(502),
        ]
        dispatcher = create_dispatcher(
            "github_api",
            host.client("installation"),
            config=DispatcherConfig(backoff=FAST_BACKOFF),
        )

        async with dispatcher:
            repo = await dispatcher.dispatch(
                CallDescriptor("repos.get", lambda gh: gh.repos.get(owner="acme", repo="docs"))
            )

        assert repo == {"full_name": "acme/docs"}
        assert len(host.calls) == 3
        metrics = dispatcher.get_metrics()
        assert metrics.total_requests == 3
        assert metrics.failed_requests == 2
        assert metrics.running_requests == 0


class TestLanguageModelFlows:
    @pytest.mark.asyncio
    async def test_reservoir_spaces_bursts(self):
        """Calls beyond the reservoir wait for the next refill."""
        completions = []

        async def complete(client):
            completions.append(time.monotonic())
            return "translated"

        began = time.monotonic()
        dispatcher = create_dispatcher(
            "free_llm",
            object(),
            config=DispatcherConfig(
                scheduler=SchedulerConfig(
                    max_concurrent=5,
                    reservoir=2,
                    reservoir_refill_interval_ms=50,
                    reservoir_refill_amount=1,
                ),
                backoff=FAST_BACKOFF,
            ),
        )

        async with dispatcher:
            results = await asyncio.gather(
                *(
                    dispatcher.dispatch(CallDescriptor("request", complete))
                    for _ in range(3)
                )
            )

        assert results == ["translated"] * 3
        assert completions[-1] - began >= 0.04
        assert dispatcher.get_metrics().total_requests == 3

    @pytest.mark.asyncio
    async def test_shutdown_rejects_queued_calls(self):
        release = asyncio.Event()

        async def slow(client):
            await release.wait()
            return "done"

        dispatcher = create_dispatcher(
            "paid_llm",
            object(),
            config=DispatcherConfig(
                scheduler=SchedulerConfig(max_concurrent=1), backoff=FAST_BACKOFF
            ),
        )

        tasks = [
            asyncio.create_task(dispatcher.dispatch(CallDescriptor("request", slow)))
            for _ in range(3)
        ]
        while dispatcher.get_metrics().running_requests < 1:
            await asyncio.sleep(0.001)

        shutdown = asyncio.create_task(dispatcher.shutdown(drain_timeout=1.0))
        await asyncio.sleep(0.01)
        release.set()
        await shutdown

        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert results[0] == "done"
        assert all(isinstance(r, QueueCancelledError) for r in results[1:])
        assert dispatcher.scheduler.queue_depth == 0

    @pytest.mark.asyncio
    async def test_caller_cancellation_frees_queue(self):
        release = asyncio.Event()

        async def slow(client):
            await release.wait()
            return "done"

        async with create_dispatcher(
            "paid_llm",
            object(),
            config=DispatcherConfig(
                scheduler=SchedulerConfig(max_concurrent=1), backoff=FAST_BACKOFF
            ),
        ) as dispatcher:
            first = asyncio.create_task(dispatcher.dispatch(CallDescriptor("request", slow)))
            second = asyncio.create_task(dispatcher.dispatch(CallDescriptor("request", slow)))
            while (
                dispatcher.get_metrics().running_requests < 1
                or dispatcher.scheduler.queue_depth < 1
            ):
                await asyncio.sleep(0.001)

            second.cancel()
            with pytest.raises(asyncio.CancelledError):
                await second
            assert dispatcher.scheduler.queue_depth == 0

            release.set()
            assert await first == "done"
            assert dispatcher.get_metrics().total_requests == 1
