"""Tests for QueueEntry."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from call_gateway.types.queue import EntryState, QueueEntry


class TestQueueEntry:
    """Tests for the scheduler's queue entry."""

    @pytest.mark.asyncio
    async def test_defaults(self):
        """New entries are queued with a short unique id."""
        loop = asyncio.get_running_loop()
        first = QueueEntry(operation=AsyncMock(), future=loop.create_future())
        second = QueueEntry(operation=AsyncMock(), future=loop.create_future())

        assert first.state is EntryState.QUEUED
        assert first.operation_name == "anonymous"
        assert first.started_at is None
        assert len(first.id) == 12
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_is_settled(self):
        """Only DONE and FAILED entries are settled."""
        loop = asyncio.get_running_loop()
        entry = QueueEntry(operation=AsyncMock(), future=loop.create_future())

        for state, settled in [
            (EntryState.QUEUED, False),
            (EntryState.RUNNING, False),
            (EntryState.DONE, True),
            (EntryState.FAILED, True),
        ]:
            entry.state = state
            assert entry.is_settled is settled

    @pytest.mark.asyncio
    async def test_wait_seconds(self):
        """wait_seconds measures time since submission."""
        loop = asyncio.get_running_loop()
        entry = QueueEntry(
            operation=AsyncMock(),
            future=loop.create_future(),
            submitted_at=datetime.now(timezone.utc) - timedelta(seconds=5),
        )
        assert 5.0 <= entry.wait_seconds < 6.0
