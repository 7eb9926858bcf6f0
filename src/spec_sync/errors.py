"""Error taxonomy for repository synchronization."""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for all synchronization errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class VcsError(SyncError):
    """Raised by a VCS adapter. Aborts the current sync attempt."""


class TransportError(VcsError):
    """Network or authentication failure during clone, pull or ls-remote."""


class RefNotFoundError(VcsError):
    """The configured branch does not exist upstream."""


class WorkingCopyMissingError(VcsError):
    """The local working copy was never cloned or has been removed."""


class RevisionNotFoundError(VcsError):
    """A diff baseline is not reachable from the local history."""


class SpecImportError(SyncError):
    """Importing a single tracked path into the catalog failed."""

    def __init__(self, path: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details={"path": path, **(details or {})})
        self.path = path


class LockContentionError(SyncError):
    """A sync is already in progress for this repository."""

    def __init__(self, repository_id: str) -> None:
        super().__init__(
            f"Sync already in progress for repository {repository_id}",
            details={"repository_id": repository_id},
        )
        self.repository_id = repository_id


class RepositoryNotFoundError(SyncError):
    """No repository configuration exists for the given id."""

    def __init__(self, repository_id: str) -> None:
        super().__init__(
            f"Repository not found: {repository_id}",
            details={"repository_id": repository_id},
        )
        self.repository_id = repository_id


class DuplicateRepositoryError(SyncError):
    """A repository configuration with the same name already exists."""
