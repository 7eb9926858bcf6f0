"""Scheduler driving periodic and on-demand syncs across repositories."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from croniter import croniter

from spec_sync.entities.reports import SyncReport, TickReport
from spec_sync.errors import LockContentionError, RepositoryNotFoundError, TransportError
from spec_sync.sync.locks import RepositoryLocks

if TYPE_CHECKING:
    from spec_sync.config import SyncSettings
    from spec_sync.entities.repository import RepositoryConfig
    from spec_sync.memory.repository_store import RepositoryStore
    from spec_sync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SyncScheduler:
    """Triggers syncs for tracked repositories.

    Every trigger (periodic tick, initial import, manual sync-now, webhook)
    goes through the same per-repository lock. The config is read from the
    store after the lock is taken and the new state is written back before it
    is released, so a waiter always sees the previous holder's result.
    """

    def __init__(
        self,
        settings: SyncSettings,
        store: RepositoryStore,
        orchestrator: SyncOrchestrator,
        locks: RepositoryLocks | None = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock = _utcnow,
    ) -> None:
        """Initialize scheduler.

        Args:
            settings: Interval, timeout and concurrency settings.
            store: Repository config store.
            orchestrator: Performs the actual syncs.
            locks: Per-repository locks (shared with other callers if given).
            sleep: Awaitable used between ticks; tests inject a fake.
            clock: Current time, used for cron due checks.
        """
        self._settings = settings
        self._store = store
        self._orchestrator = orchestrator
        self._locks = locks or RepositoryLocks()
        self._sleep = sleep
        self._clock = clock
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def locks(self) -> RepositoryLocks:
        return self._locks

    @property
    def running(self) -> bool:
        return self._running

    # -- Triggers ------------------------------------------------------------

    async def initial_import(self, repository_id: str) -> SyncReport:
        """Forced sync right after activation. Waits for an in-flight sync."""
        logger.info("Performing initial import for repository %s", repository_id)
        return await self._run(repository_id, forced=True, wait=True)

    async def sync_now(self, repository_id: str) -> SyncReport:
        """Manual forced sync.

        Raises:
            LockContentionError: If a sync is already running for the repository.
            RepositoryNotFoundError: If the id is unknown.
        """
        return await self._run(repository_id, forced=True, wait=False)

    async def sync_repository(self, repository_id: str) -> SyncReport:
        """Incremental sync of a single repository, rejecting on contention."""
        return await self._run(repository_id, forced=False, wait=False)

    async def cleanup(self, repository_id: str) -> RepositoryConfig:
        """Remove a repository's working copy once no sync is running."""
        async with self._locks.hold(repository_id, wait=True):
            config = self._require(repository_id)
            cleaned = await self._orchestrator.cleanup(config)
            if cleaned is not config:
                return self._persist(cleaned) or cleaned
            return cleaned

    async def tick(self) -> TickReport:
        """Sync every active, due repository once. Never raises for a single repository."""
        report = TickReport(started_at=self._clock())
        now = report.started_at
        configs = [c for c in self._store.list_active() if self._is_due(c, now)]

        if not configs:
            logger.debug("No active repository configurations due")
            report.finished_at = self._clock()
            return report

        logger.info("Starting sync of %d repositories", len(configs))
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_syncs)

        async def isolated(config: RepositoryConfig) -> tuple[str, SyncReport | None]:
            async with semaphore:
                return await self._sync_isolated(config)

        outcomes = await asyncio.gather(*(isolated(c) for c in configs))

        for status, sync_report in outcomes:
            if status == "skipped":
                report.skipped += 1
            elif status == "succeeded":
                report.succeeded += 1
            else:
                report.failed += 1
            if sync_report is not None:
                report.reports.append(sync_report)

        report.finished_at = self._clock()
        logger.info(
            "Sync completed. Success: %d, Failures: %d, Skipped: %d",
            report.succeeded,
            report.failed,
            report.skipped,
        )
        return report

    # -- Loop ----------------------------------------------------------------

    async def _tick_loop(self) -> None:
        """Main scheduling loop."""
        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception("Error during repositories sync")
            await self._sleep(self._settings.poll_interval_seconds)

    async def start(self) -> None:
        """Start the periodic loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._tick_loop())
        logger.info("Scheduler started (interval: %d seconds)", self._settings.poll_interval_seconds)

    async def stop(self) -> None:
        """Stop the periodic loop. An in-flight adapter call finishes first."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped")

    # -- Internals -------------------------------------------------------------

    def _require(self, repository_id: str) -> RepositoryConfig:
        config = self._store.get(repository_id)
        if config is None:
            raise RepositoryNotFoundError(repository_id)
        return config

    def _is_due(self, config: RepositoryConfig, now: datetime) -> bool:
        """Whether the repository's own cron schedule allows a sync at ``now``.

        Measured from the last sync attempt, so a no-op sync also counts.
        """
        last = config.last_sync_attempt or config.last_import_date
        if not config.cron_expression or last is None:
            return True
        next_run = croniter(config.cron_expression, last).get_next(datetime)
        return next_run <= now

    def _persist(self, result_config: RepositoryConfig) -> RepositoryConfig | None:
        """Write sync-owned fields onto the current stored record."""
        current = self._store.get(result_config.id)
        if current is None:
            logger.warning("Repository %s was deleted during its sync, result dropped", result_config.name)
            return None
        return self._store.save(current.with_sync_state_of(result_config))

    async def _run(self, repository_id: str, *, forced: bool, wait: bool) -> SyncReport:
        async with self._locks.hold(repository_id, wait=wait):
            config = self._require(repository_id).with_attempt(self._clock())
            operation = self._orchestrator.force_sync if forced else self._orchestrator.sync
            timeout = self._settings.sync_timeout_seconds
            try:
                async with asyncio.timeout(timeout):
                    result = await operation(config)
            except TimeoutError:
                error = TransportError(
                    f"Sync of {config.name} timed out after {timeout} seconds",
                    details={"repository_id": repository_id},
                )
                result = self._orchestrator.record_failure(config, error, forced=forced)
            except Exception as e:
                logger.exception("Unexpected error syncing repository %s", config.name)
                result = self._orchestrator.record_failure(config, e, forced=forced)
            self._persist(result.config)
            return result.report

    async def _sync_isolated(self, config: RepositoryConfig) -> tuple[str, SyncReport | None]:
        """Sync one repository for a tick, containing every failure."""
        try:
            report = await self._run(config.id, forced=False, wait=False)
        except LockContentionError:
            logger.warning("Skipping repository %s: sync already in progress", config.name)
            return "skipped", None
        except RepositoryNotFoundError:
            logger.warning("Repository %s was deleted before its sync started", config.name)
            return "skipped", None
        except Exception:
            logger.exception("Failed to sync repository %s", config.name)
            return "failed", None

        return ("succeeded" if report.success else "failed"), report
