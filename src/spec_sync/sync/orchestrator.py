"""Sync orchestrator: change detection and incremental import for one repository.

The orchestrator never persists anything. Each operation takes a config
snapshot and returns a ``SyncResult`` holding the new config and a report;
the caller decides when to store it.

Revision bookkeeping rules:

- ``last_commit_hash`` only advances once the VCS step succeeded and every
  selected path has been attempted. Per-path import failures are recorded in
  ``last_import_error`` but do not hold the baseline back.
- A VCS failure aborts the attempt and leaves the baseline untouched.
- Without a usable diff baseline every tracked path is imported. An empty
  diff imports nothing.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from spec_sync.credentials import ANONYMOUS, Credential
from spec_sync.entities.reports import PathFailure, SyncReport, SyncResult
from spec_sync.entities.repository import CatalogRef, RepositoryConfig
from spec_sync.errors import RevisionNotFoundError, VcsError, WorkingCopyMissingError

if TYPE_CHECKING:
    from collections.abc import Callable

    from spec_sync.credentials import CredentialResolver
    from spec_sync.importer import CatalogEntry, Importer
    from spec_sync.vcs.base import VcsAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], /, *args: Any) -> T:
    """Run a blocking call in a worker thread.

    If the caller is cancelled while the call is in flight, cancellation takes
    effect only after the call returns, so a working copy is never released
    while git is still operating on it.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        if not task.cancelled():
            task.exception()
        raise


class SyncOrchestrator:
    """Runs sync and forced sync for a single repository config."""

    def __init__(
        self,
        vcs: VcsAdapter,
        importer: Importer,
        credentials: CredentialResolver,
        default_branch: str = "main",
    ) -> None:
        """Initialize orchestrator.

        Args:
            vcs: Adapter performing clone, pull and diff.
            importer: Imports one local file into the catalog.
            credentials: Resolves a config's auth settings.
            default_branch: Branch used when a config names none.
        """
        self._vcs = vcs
        self._importer = importer
        self._credentials = credentials
        self._default_branch = default_branch

    # -- Public operations -------------------------------------------------

    async def sync(self, config: RepositoryConfig) -> SyncResult:
        """Incremental sync: import only tracked paths changed upstream."""
        if config.local_path is None:
            logger.info("Repository %s has no working copy yet, running first import", config.name)
            return await self._clone_and_import(config, forced=False)

        credential = self._credential_for(config)
        baseline = config.last_commit_hash
        local_path = config.local_path

        try:
            head = await run_blocking(self._vcs.current_revision, local_path)
            upstream = await run_blocking(self._vcs.remote_revision, local_path, credential)
            if head == baseline and upstream == baseline:
                logger.debug("No changes detected in repository %s", config.name)
                return self._unchanged(config)

            logger.info(
                "Changes detected in repository %s (old: %s, new: %s)",
                config.name,
                baseline[:8] if baseline else "none",
                upstream[:8],
            )
            revision = await run_blocking(self._vcs.pull, local_path, credential)
        except WorkingCopyMissingError as e:
            logger.warning("Working copy of %s is gone, it will be re-cloned: %s", config.name, e)
            return self._failed(config.without_working_copy(), e, forced=False)
        except VcsError as e:
            return self._failed(config, e, forced=False)

        if revision == baseline:
            return self._unchanged(config)

        selected = await self._changed_paths(config, local_path, baseline, revision)
        return await self._import_and_advance(config, local_path, revision, selected, forced=False)

    async def force_sync(self, config: RepositoryConfig) -> SyncResult:
        """Pull (or clone) and import every tracked path regardless of the diff."""
        if config.local_path is None:
            return await self._clone_and_import(config, forced=True)

        credential = self._credential_for(config)
        try:
            revision = await run_blocking(self._vcs.pull, config.local_path, credential)
        except WorkingCopyMissingError:
            logger.warning("Working copy of %s is gone, cloning again", config.name)
            return await self._clone_and_import(config.without_working_copy(), forced=True)
        except VcsError as e:
            return self._failed(config, e, forced=True)

        return await self._import_and_advance(
            config, config.local_path, revision, list(config.spec_paths), forced=True
        )

    async def cleanup(self, config: RepositoryConfig) -> RepositoryConfig:
        """Remove the working copy. A config without one is returned as is."""
        if config.local_path is None:
            return config
        await run_blocking(self._vcs.remove, config.local_path)
        logger.info("Cleaned up working copy of repository %s", config.name)
        return config.without_working_copy()

    def record_failure(self, config: RepositoryConfig, error: Exception, forced: bool = False) -> SyncResult:
        """Result for a sync that died outside the orchestrator's own handling."""
        return self._failed(config, error, forced=forced)

    # -- Steps ---------------------------------------------------------------

    def _credential_for(self, config: RepositoryConfig) -> Credential:
        return self._credentials.resolve(config.auth_type, config.secret_ref) or ANONYMOUS

    async def _clone_and_import(self, config: RepositoryConfig, forced: bool) -> SyncResult:
        credential = self._credential_for(config)
        branch = config.effective_branch(self._default_branch)
        try:
            cloned = await run_blocking(self._vcs.clone, config.repository_url, branch, credential)
        except VcsError as e:
            return self._failed(config, e, forced=forced)

        logger.info("Repository %s cloned to %s", config.name, cloned.local_path)
        try:
            return await self._import_and_advance(
                config.with_working_copy(cloned.local_path),
                cloned.local_path,
                cloned.head_revision,
                list(config.spec_paths),
                forced=forced,
            )
        except asyncio.CancelledError:
            # The new working copy is only recorded in the result, which is lost.
            logger.warning("Import of %s cancelled, removing fresh clone %s", config.name, cloned.local_path)
            await run_blocking(self._vcs.remove, cloned.local_path)
            raise

    async def _changed_paths(
        self,
        config: RepositoryConfig,
        local_path: str,
        baseline: str | None,
        revision: str,
    ) -> list[str]:
        """Tracked paths to import for the move from ``baseline`` to ``revision``."""
        if baseline is None:
            logger.info("No baseline revision for %s, importing all tracked paths", config.name)
            return list(config.spec_paths)
        try:
            changed = await run_blocking(self._vcs.diff, local_path, baseline, revision)
        except RevisionNotFoundError as e:
            logger.warning("Cannot compute diff for %s, importing all tracked paths: %s", config.name, e)
            return list(config.spec_paths)

        logger.info("%d files changed in repository %s", len(changed), config.name)
        return [path for path in config.spec_paths if path in changed]

    async def _import_and_advance(
        self,
        config: RepositoryConfig,
        local_path: str,
        revision: str,
        selected: list[str],
        forced: bool,
    ) -> SyncResult:
        imported: list[str] = []
        failures: list[PathFailure] = []
        refs: list[CatalogRef] = []

        for spec_path in selected:
            file_path = Path(local_path) / spec_path
            try:
                entry = await run_blocking(self._import_file, file_path)
            except Exception as e:
                logger.exception("Failed to import spec %s from %s", spec_path, config.name)
                failures.append(PathFailure(path=spec_path, message=str(e)))
                continue
            if entry is None:
                logger.warning("Spec file does not exist: %s", file_path)
                failures.append(PathFailure(path=spec_path, message="file not found in working copy"))
                continue

            imported.append(spec_path)
            refs.append(
                CatalogRef(entry_id=entry.entry_id, name=entry.name, version=entry.version, source_path=spec_path)
            )
            logger.info("Imported spec %s from %s", spec_path, config.name)

        error = self._aggregate(failures, attempted=len(selected))
        new_config = config.with_sync_completed(revision, error, refs, at=datetime.now(tz=UTC))
        report = SyncReport(
            repository_id=config.id,
            repository_name=config.name,
            forced=forced,
            imported_paths=imported,
            failed_paths=failures,
            skipped_paths=[p for p in config.spec_paths if p not in selected],
            commit_hash=revision,
            previous_commit_hash=config.last_commit_hash,
            error=error,
        )
        logger.info("Synced repository %s at %s: %s", config.name, revision[:8], report.summary)
        return SyncResult(config=new_config, report=report)

    # -- Helpers ---------------------------------------------------------------

    def _import_file(self, file_path: Path) -> CatalogEntry | None:
        """Import one file, or return ``None`` when it is absent. Runs in a worker thread."""
        if not file_path.is_file():
            return None
        return self._importer.import_from_local_file(file_path)

    @staticmethod
    def _aggregate(failures: list[PathFailure], attempted: int) -> str | None:
        if not failures:
            return None
        details = "; ".join(f"{f.path}: {f.message}" for f in failures)
        return f"Failed to import {len(failures)} of {attempted} spec paths: {details}"

    @staticmethod
    def _unchanged(config: RepositoryConfig) -> SyncResult:
        report = SyncReport(
            repository_id=config.id,
            repository_name=config.name,
            changed=False,
            skipped_paths=list(config.spec_paths),
            commit_hash=config.last_commit_hash,
            previous_commit_hash=config.last_commit_hash,
        )
        return SyncResult(config=config, report=report)

    @staticmethod
    def _failed(config: RepositoryConfig, error: Exception, forced: bool) -> SyncResult:
        message = f"{type(error).__name__}: {error}"
        logger.error("Failed to sync repository %s: %s", config.name, message)
        report = SyncReport(
            repository_id=config.id,
            repository_name=config.name,
            forced=forced,
            commit_hash=config.last_commit_hash,
            previous_commit_hash=config.last_commit_hash,
            error=message,
        )
        return SyncResult(config=config.with_error(message), report=report)
