"""Memory package."""

from spec_sync.memory.repository_store import RepositoryStore

__all__ = ["RepositoryStore"]
