"""Repository synchronization engine."""

from spec_sync.sync.locks import RepositoryLocks
from spec_sync.sync.manager import SyncManager
from spec_sync.sync.orchestrator import SyncOrchestrator
from spec_sync.sync.scheduler import SyncScheduler
from spec_sync.sync.service import RepositoryService
from spec_sync.sync.webhook import WebhookServer

__all__ = [
    "RepositoryLocks",
    "RepositoryService",
    "SyncManager",
    "SyncOrchestrator",
    "SyncScheduler",
    "WebhookServer",
]
