"""Per-repository mutual exclusion."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from spec_sync.errors import LockContentionError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class RepositoryLocks:
    """One asyncio lock per repository id.

    Only one sync may touch a working copy at a time. Callers either wait for
    the in-flight sync or are rejected with ``LockContentionError``.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, repository_id: str) -> asyncio.Lock:
        return self._locks.setdefault(repository_id, asyncio.Lock())

    def is_locked(self, repository_id: str) -> bool:
        lock = self._locks.get(repository_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, repository_id: str, *, wait: bool = False) -> AsyncIterator[None]:
        """Hold the repository's lock for the duration of the block.

        Raises:
            LockContentionError: If ``wait`` is False and the lock is taken.
        """
        lock = self._lock_for(repository_id)
        if not wait and lock.locked():
            raise LockContentionError(repository_id)
        async with lock:
            yield

    def discard(self, repository_id: str) -> None:
        """Forget the lock of a deleted repository if nobody holds it."""
        lock = self._locks.get(repository_id)
        if lock is not None and not lock.locked():
            del self._locks[repository_id]
