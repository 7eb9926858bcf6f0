"""Sync manager that wires the engine together and runs its background services."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from spec_sync.credentials import CredentialResolver, EnvCredentialResolver
from spec_sync.importer import HttpArtifactImporter, Importer
from spec_sync.memory.repository_store import RepositoryStore
from spec_sync.sync.orchestrator import SyncOrchestrator
from spec_sync.sync.scheduler import SyncScheduler
from spec_sync.sync.service import RepositoryService
from spec_sync.sync.webhook import WebhookServer
from spec_sync.vcs.git_adapter import GitAdapter

if TYPE_CHECKING:
    from spec_sync.config import SyncSettings
    from spec_sync.vcs.base import VcsAdapter

logger = logging.getLogger(__name__)


class SyncManager:
    """Owns the store, orchestrator, scheduler, service and webhook server.

    Orchestrates:
    - Periodic ticks over active repositories
    - Webhook server for push-triggered syncs
    - The repository service used by management tools
    """

    def __init__(
        self,
        settings: SyncSettings,
        store: RepositoryStore | None = None,
        vcs: VcsAdapter | None = None,
        importer: Importer | None = None,
        credentials: CredentialResolver | None = None,
    ) -> None:
        """Initialize sync manager.

        Every collaborator defaults to the implementation configured by
        ``settings``; tests pass fakes instead.
        """
        self._settings = settings
        self.store = store or RepositoryStore(settings.store_path)
        self._importer = importer or HttpArtifactImporter(
            settings.catalog_url,
            token=settings.catalog_token,
            timeout=settings.catalog_timeout_seconds,
        )
        self.orchestrator = SyncOrchestrator(
            vcs or GitAdapter(settings.workspace_dir),
            self._importer,
            credentials or EnvCredentialResolver(),
            default_branch=settings.default_branch,
        )
        self.scheduler = SyncScheduler(settings, self.store, self.orchestrator)
        self.service = RepositoryService(self.store, self.scheduler, default_branch=settings.default_branch)
        self.webhook = WebhookServer(settings, self.store, self.scheduler)

    async def start(self) -> None:
        """Start the enabled background services."""
        if self._settings.webhook_enabled:
            await self.webhook.start()

        if self._settings.poll_enabled:
            await self.scheduler.start()

        logger.info(
            "Sync manager started (%d repositories, %d active)",
            len(self.store),
            len(self.store.list_active()),
        )

    async def stop(self) -> None:
        """Stop background services and release the catalog client."""
        await self.scheduler.stop()
        await self.webhook.stop()
        close = getattr(self._importer, "close", None)
        if callable(close):
            close()
        logger.info("Sync manager stopped")

    async def run_forever(self) -> None:
        """Start services and run until cancelled."""
        await self.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await self.stop()
