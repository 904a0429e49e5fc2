"""Tests for WrappedClient."""

from unittest.mock import AsyncMock, Mock

import pytest

from call_gateway.exceptions import ConfigurationError
from call_gateway.fallback.client import WrappedClient
from call_gateway.fallback.gateway import CredentialFallbackGateway


class HTTPStatusError(Exception):
    def __init__(self, status):
        super().__init__(f"HTTP {status}")
        self.status = status


class TestWrappedClient:
    """Tests for WrappedClient construction and dispatch."""

    @pytest.fixture
    def client(self):
        client = Mock()
        client.repos.get = AsyncMock(return_value={"name": "docs"})
        client.pulls.create = AsyncMock(return_value={"number": 7})
        client.request = AsyncMock(return_value={"rate": {}})
        return client

    @pytest.fixture
    def invoke(self, client):
        async def run(call):
            return await call.operation(client)

        return AsyncMock(side_effect=run)

    @pytest.mark.asyncio
    async def test_operation_lookup(self, client, invoke):
        wrapped = WrappedClient(invoke, {"repos": ["get"]})

        result = await wrapped.operation("repos", "get")(owner="acme", repo="docs")

        assert result == {"name": "docs"}
        client.repos.get.assert_awaited_once_with(owner="acme", repo="docs")
        call = invoke.await_args.args[0]
        assert call.operation_name == "repos.get"
        assert call.namespace == "repos"

    @pytest.mark.asyncio
    async def test_attribute_access(self, client, invoke):
        wrapped = WrappedClient(invoke, {"repos": ["get"], "pulls": ["create"]})

        assert await wrapped.pulls.create(title="Translate docs") == {"number": 7}
        client.pulls.create.assert_awaited_once_with(title="Translate docs")

    @pytest.mark.asyncio
    async def test_namespace_callable(self, client, invoke):
        """A namespace with no methods wraps the client attribute itself."""
        wrapped = WrappedClient(invoke, {"request": []})

        assert await wrapped.request("GET /rate_limit") == {"rate": {}}
        assert invoke.await_args.args[0].operation_name == "request"
        assert wrapped.operation("request") is wrapped.request

    @pytest.mark.asyncio
    async def test_sync_client_methods(self, client, invoke):
        client.issues.create = Mock(return_value={"number": 1})
        wrapped = WrappedClient(invoke, {"issues": ["create"]})

        assert await wrapped.issues.create(title="bug") == {"number": 1}

    def test_operation_names(self, invoke):
        wrapped = WrappedClient(invoke, {"repos": ["get", "get_content"], "git": ["create_ref"]})
        assert wrapped.operation_names == ["git.create_ref", "repos.get", "repos.get_content"]

    def test_unknown_namespace(self, invoke):
        with pytest.raises(ConfigurationError, match="actions"):
            WrappedClient(invoke, {"actions": ["list_workflows"]})

    def test_invalid_method_name(self, invoke):
        with pytest.raises(ConfigurationError, match="Invalid method name"):
            WrappedClient(invoke, {"repos": ["get-content"]})

    def test_undeclared_operation(self, invoke):
        wrapped = WrappedClient(invoke, {"repos": ["get"]})
        with pytest.raises(ConfigurationError, match="repos.delete"):
            wrapped.operation("repos", "delete")


class TestWrappedClientWithGateway:
    """Wrapped operations are called the same way whether or not fallback happens."""

    @pytest.mark.asyncio
    async def test_fallback_is_transparent(self):
        primary = Mock()
        primary.repos.get_content = AsyncMock(side_effect=HTTPStatusError(403))
        secondary = Mock()
        secondary.repos.get_content = AsyncMock(return_value="# README")
        gateway = CredentialFallbackGateway(primary, secondary=secondary)
        wrapped = WrappedClient(gateway.invoke, {"repos": ["get_content"]})

        content = await wrapped.repos.get_content(owner="acme", repo="docs", path="README.md")

        assert content == "# README"
        primary.repos.get_content.assert_awaited_once_with(
            owner="acme", repo="docs", path="README.md"
        )
        secondary.repos.get_content.assert_awaited_once_with(
            owner="acme", repo="docs", path="README.md"
        )
