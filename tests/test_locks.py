"""Tests for per-repository locks."""

from __future__ import annotations

import asyncio

import pytest

from spec_sync.errors import LockContentionError
from spec_sync.sync.locks import RepositoryLocks


class TestRepositoryLocks:
    async def test_second_holder_is_rejected(self) -> None:
        """try_hold on a held lock raises LockContentionError."""
        locks = RepositoryLocks()
        async with locks.hold("repo-a"):
            assert locks.is_locked("repo-a")
            with pytest.raises(LockContentionError) as exc_info:
                async with locks.hold("repo-a"):
                    pass
        assert exc_info.value.repository_id == "repo-a"
        assert not locks.is_locked("repo-a")

    async def test_locks_are_independent_per_repository(self) -> None:
        """Holding one repository does not block another."""
        locks = RepositoryLocks()
        async with locks.hold("repo-a"), locks.hold("repo-b"):
            assert locks.is_locked("repo-a")
            assert locks.is_locked("repo-b")

    async def test_waiter_runs_after_holder(self) -> None:
        """hold waits until the current holder releases."""
        locks = RepositoryLocks()
        order: list[str] = []

        async def waiter() -> None:
            async with locks.hold("repo-a", wait=True):
                order.append("waiter")

        async with locks.hold("repo-a"):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0.01)
            order.append("holder")

        await task
        assert order == ["holder", "waiter"]

    async def test_discard_forgets_free_lock_only(self) -> None:
        locks = RepositoryLocks()
        async with locks.hold("repo-a"):
            locks.discard("repo-a")
            assert locks.is_locked("repo-a")
        locks.discard("repo-a")
        assert not locks.is_locked("repo-a")
        assert "repo-a" not in locks._locks
