"""JSON-backed store for repository configurations."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from spec_sync.entities.repository import RepositoryConfig

logger = logging.getLogger(__name__)


def _normalize_url(url: str) -> str:
    return url.strip().rstrip("/").removesuffix(".git").lower()


class RepositoryStore:
    """Store for tracked repository configurations.

    Persists every config to a single JSON file, rewritten atomically on each
    change. With ``path=None`` the store lives in memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store, loading existing configs from ``path``."""
        self._path = path
        self._lock = threading.RLock()
        self._repos: dict[str, RepositoryConfig] = {}
        self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> None:
        """Load configs from disk."""
        if self._path is None or not self._path.exists():
            return

        with self._path.open(encoding="utf-8") as f:
            data = json.load(f)

        for entry in data.get("repositories", []):
            config = RepositoryConfig.model_validate(entry)
            self._repos[config.id] = config

        logger.info("Loaded %d repository configs from %s", len(self._repos), self._path)

    def _flush(self) -> None:
        """Write all configs to disk through a temp file and an atomic replace."""
        if self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        data: dict[str, Any] = {
            "repositories": [c.model_dump(mode="json") for c in self._repos.values()],
        }
        fd, tmp_name = tempfile.mkstemp(prefix=".repositories-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved store with %d repositories", len(self._repos))

    def save(self, config: RepositoryConfig) -> RepositoryConfig:
        """Insert or replace a config."""
        with self._lock:
            self._repos[config.id] = config
            self._flush()
        return config

    def delete(self, repository_id: str) -> bool:
        """Remove a config. Returns False if it did not exist."""
        with self._lock:
            if repository_id not in self._repos:
                return False
            del self._repos[repository_id]
            self._flush()
        logger.info("Deleted repository config %s", repository_id)
        return True

    def get(self, repository_id: str) -> RepositoryConfig | None:
        """Get a config by id."""
        return self._repos.get(repository_id)

    def find_by_name(self, name: str) -> RepositoryConfig | None:
        """Get a config by its human readable name."""
        return next((c for c in self._repos.values() if c.name == name), None)

    def find_by_url(self, url: str) -> list[RepositoryConfig]:
        """All configs tracking ``url``, ignoring case, trailing slash and ``.git``."""
        wanted = _normalize_url(url)
        return [c for c in self._repos.values() if _normalize_url(c.repository_url) == wanted]

    def list_all(self) -> list[RepositoryConfig]:
        """List every config."""
        return list(self._repos.values())

    def list_active(self) -> list[RepositoryConfig]:
        """List configs included in periodic syncs."""
        return [c for c in self._repos.values() if c.active]

    def __len__(self) -> int:
        return len(self._repos)

    def __contains__(self, repository_id: str) -> bool:
        return repository_id in self._repos
