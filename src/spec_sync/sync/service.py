"""Operational surface for managing tracked repositories."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from spec_sync.entities.repository import AuthType, RepositoryConfig, SecretRef
from spec_sync.errors import DuplicateRepositoryError, RepositoryNotFoundError

if TYPE_CHECKING:
    from spec_sync.entities.reports import SyncReport
    from spec_sync.memory.repository_store import RepositoryStore
    from spec_sync.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)

# Fields that identify the checkout; changing one invalidates the working copy.
_CHECKOUT_FIELDS = frozenset({"repository_url", "branch"})

# Fields a caller may edit through ``update``.
_EDITABLE_FIELDS = frozenset(
    {"name", "repository_url", "branch", "spec_paths", "cron_expression", "auth_type", "secret_ref"}
)


class RepositoryService:
    """Create, activate, sync and delete repository configurations.

    Management layers (MCP tools, webhook, CLI) call into this class; it
    delegates every sync to the scheduler so that locking stays in one place.
    """

    def __init__(self, store: RepositoryStore, scheduler: SyncScheduler, default_branch: str = "main") -> None:
        self._store = store
        self._scheduler = scheduler
        self._default_branch = default_branch

    def create(
        self,
        name: str,
        repository_url: str,
        spec_paths: list[str] | None = None,
        branch: str | None = None,
        cron_expression: str | None = None,
        auth_type: AuthType | str = AuthType.NONE,
        secret_id: str | None = None,
    ) -> RepositoryConfig:
        """Register a new, inactive repository configuration."""
        if self._store.find_by_name(name) is not None:
            raise DuplicateRepositoryError(
                f"Repository named {name!r} already exists",
                details={"name": name},
            )
        config = RepositoryConfig(
            name=name,
            repository_url=repository_url,
            branch=branch or self._default_branch,
            spec_paths=tuple(spec_paths or ()),
            cron_expression=cron_expression,
            auth_type=AuthType(auth_type),
            secret_ref=SecretRef(secret_id=secret_id) if secret_id else None,
        )
        self._store.save(config)
        logger.info("Created repository config %s (%s)", config.name, config.id)
        return config

    async def update(self, repository_id: str, **changes: Any) -> RepositoryConfig:
        """Edit a configuration.

        Changing the URL or branch removes the working copy, so the next sync
        starts from a fresh clone.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        config = self.get(repository_id)
        if "name" in changes and changes["name"] != config.name:
            other = self._store.find_by_name(changes["name"])
            if other is not None and other.id != repository_id:
                raise DuplicateRepositoryError(
                    f"Repository named {changes['name']!r} already exists",
                    details={"name": changes["name"]},
                )
        if isinstance(changes.get("secret_ref"), str):
            changes["secret_ref"] = SecretRef(secret_id=changes["secret_ref"])

        updated = config.with_changes(**changes)
        if any(getattr(updated, f) != getattr(config, f) for f in _CHECKOUT_FIELDS):
            config = await self._scheduler.cleanup(repository_id)
            updated = config.with_changes(**changes)
            logger.info("Checkout of %s changed, working copy reset", updated.name)

        self._store.save(updated)
        return updated

    async def activate(self, repository_id: str) -> SyncReport:
        """Include the repository in periodic syncs and run its initial import."""
        config = self.get(repository_id)
        self._store.save(config.activated())
        logger.info("Activated repository %s", config.name)
        return await self._scheduler.initial_import(repository_id)

    def deactivate(self, repository_id: str) -> RepositoryConfig:
        """Exclude the repository from periodic syncs. The working copy is kept."""
        config = self.get(repository_id).deactivated()
        self._store.save(config)
        logger.info("Deactivated repository %s", config.name)
        return config

    async def delete(self, repository_id: str) -> None:
        """Remove the working copy, then the configuration."""
        self.get(repository_id)
        await self._scheduler.cleanup(repository_id)
        self._store.delete(repository_id)
        self._scheduler.locks.discard(repository_id)

    async def sync_now(self, repository_id: str) -> SyncReport:
        """Forced sync of one repository, rejected if one is already running."""
        return await self._scheduler.sync_now(repository_id)

    def get(self, repository_id: str) -> RepositoryConfig:
        config = self._store.get(repository_id)
        if config is None:
            raise RepositoryNotFoundError(repository_id)
        return config

    def status(self, repository_id: str) -> RepositoryConfig:
        """Current state of a repository, including its last error."""
        return self.get(repository_id)

    def list_repositories(self) -> list[RepositoryConfig]:
        return self._store.list_all()
