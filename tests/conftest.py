"""Shared test fixtures for spec-sync."""

from __future__ import annotations

import shutil
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from spec_sync.config import SyncSettings
from spec_sync.credentials import StaticCredentialResolver
from spec_sync.entities.repository import RepositoryConfig
from spec_sync.errors import RevisionNotFoundError, SpecImportError, WorkingCopyMissingError
from spec_sync.importer import CatalogEntry
from spec_sync.memory.repository_store import RepositoryStore
from spec_sync.sync.orchestrator import SyncOrchestrator
from spec_sync.sync.scheduler import SyncScheduler
from spec_sync.sync.service import RepositoryService
from spec_sync.vcs.base import CloneResult

if TYPE_CHECKING:
    from spec_sync.credentials import Credential

DEFAULT_FILES = {
    "openapi/orders.yaml": "openapi: 3.0.0\ninfo: {title: orders, version: 1.0.0}\n",
    "openapi/users.yaml": "openapi: 3.0.0\ninfo: {title: users, version: 1.0.0}\n",
}


class FakeRemote:
    """Linear commit history of one upstream repository."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = dict(files)
        self.history: list[tuple[str, set[str]]] = [("c1", set(files))]

    @property
    def head(self) -> str:
        return self.history[-1][0]

    def commit(self, changes: dict[str, str | None], sha: str | None = None) -> str:
        """Apply ``changes`` (``None`` deletes a file) as a new commit."""
        sha = sha or f"c{len(self.history) + 1}"
        for path, content in changes.items():
            if content is None:
                self.files.pop(path, None)
            else:
                self.files[path] = content
        self.history.append((sha, set(changes)))
        return sha

    def changed_between(self, old: str, new: str) -> set[str]:
        shas = [sha for sha, _ in self.history]
        if old not in shas or new not in shas:
            raise RevisionNotFoundError(f"Unknown revision {old}")
        changed: set[str] = set()
        for _, paths in self.history[shas.index(old) + 1 : shas.index(new) + 1]:
            changed |= paths
        return changed


class FakeVcs:
    """In-memory VCS adapter writing real files into working copy directories."""

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace
        self.remotes: dict[str, FakeRemote] = {}
        self.copies: dict[str, tuple[str, str]] = {}
        self.clone_calls: list[tuple[str, str, Credential]] = []
        self.pull_calls: list[str] = []
        self.removed: list[str] = []
        self.clone_errors: dict[str, Exception] = {}
        self.pull_errors: dict[str, Exception] = {}
        self.pull_delay = 0.0
        self.pull_gate: threading.Event | None = None
        self.pull_started = threading.Event()
        self._lock = threading.Lock()
        self._counter = 0

    def remote(self, url: str, files: dict[str, str] | None = None) -> FakeRemote:
        if url not in self.remotes:
            self.remotes[url] = FakeRemote(DEFAULT_FILES if files is None else files)
        return self.remotes[url]

    def _checkout(self, local_path: str, remote: FakeRemote) -> None:
        root = Path(local_path)
        shutil.rmtree(root, ignore_errors=True)
        for rel, content in remote.files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        root.mkdir(parents=True, exist_ok=True)

    def _copy(self, local_path: str) -> tuple[str, str]:
        if local_path not in self.copies or not Path(local_path).is_dir():
            raise WorkingCopyMissingError(f"No working copy at {local_path}")
        return self.copies[local_path]

    def clone(self, url: str, branch: str, credential: Credential) -> CloneResult:
        self.clone_calls.append((url, branch, credential))
        if url in self.clone_errors:
            raise self.clone_errors[url]
        remote = self.remote(url)
        with self._lock:
            self._counter += 1
            local_path = str(self.workspace / f"wc-{self._counter}")
        self._checkout(local_path, remote)
        self.copies[local_path] = (url, remote.head)
        return CloneResult(local_path=local_path, head_revision=remote.head)

    def pull(self, local_path: str, credential: Credential) -> str:
        url, _ = self._copy(local_path)
        self.pull_calls.append(local_path)
        self.pull_started.set()
        if self.pull_gate is not None:
            self.pull_gate.wait(5)
        if self.pull_delay:
            time.sleep(self.pull_delay)
        if url in self.pull_errors:
            raise self.pull_errors[url]
        remote = self.remotes[url]
        self._checkout(local_path, remote)
        self.copies[local_path] = (url, remote.head)
        return remote.head

    def current_revision(self, local_path: str) -> str:
        return self._copy(local_path)[1]

    def remote_revision(self, local_path: str, credential: Credential) -> str:
        url, _ = self._copy(local_path)
        return self.remotes[url].head

    def diff(self, local_path: str, old_revision: str, new_revision: str) -> set[str]:
        url, _ = self._copy(local_path)
        return self.remotes[url].changed_between(old_revision, new_revision)

    def remove(self, local_path: str) -> None:
        self.removed.append(local_path)
        self.copies.pop(local_path, None)
        shutil.rmtree(local_path, ignore_errors=True)


class FakeImporter:
    """Records imported files; fails for file names listed in ``failing``."""

    def __init__(self) -> None:
        self.imported: list[Path] = []
        self.failing: set[str] = set()
        self.delay = 0.0
        self._lock = threading.Lock()

    @property
    def imported_names(self) -> list[str]:
        return [p.name for p in self.imported]

    def import_from_local_file(self, path: Path) -> CatalogEntry:
        if self.delay:
            time.sleep(self.delay)
        if path.name in self.failing:
            raise SpecImportError(str(path), f"Catalog rejected {path.name} (HTTP 400): invalid spec")
        with self._lock:
            self.imported.append(path)
        return CatalogEntry(name=path.stem, version="1.0.0")


@pytest.fixture
def settings(tmp_path: Path) -> SyncSettings:
    """Settings pointing at temporary directories with the loop disabled."""
    return SyncSettings(
        workspace_dir=tmp_path / "workspaces",
        store_path=tmp_path / "repositories.json",
        poll_enabled=False,
        poll_interval_seconds=5,
        sync_timeout_seconds=None,
        webhook_enabled=False,
        webhook_secret=None,
    )


@pytest.fixture
def fake_vcs(tmp_path: Path) -> FakeVcs:
    workspace = tmp_path / "workspaces"
    workspace.mkdir()
    return FakeVcs(workspace)


@pytest.fixture
def fake_importer() -> FakeImporter:
    return FakeImporter()


@pytest.fixture
def credentials() -> StaticCredentialResolver:
    return StaticCredentialResolver({"github-token": "ghp_secret", "deploy-key": "/keys/id_ed25519"})


@pytest.fixture
def orchestrator(
    fake_vcs: FakeVcs, fake_importer: FakeImporter, credentials: StaticCredentialResolver
) -> SyncOrchestrator:
    return SyncOrchestrator(fake_vcs, fake_importer, credentials, default_branch="main")


@pytest.fixture
def store() -> RepositoryStore:
    """In-memory repository store."""
    return RepositoryStore()


@pytest.fixture
def scheduler(settings: SyncSettings, store: RepositoryStore, orchestrator: SyncOrchestrator) -> SyncScheduler:
    return SyncScheduler(settings, store, orchestrator)


@pytest.fixture
def service(store: RepositoryStore, scheduler: SyncScheduler) -> RepositoryService:
    return RepositoryService(store, scheduler, default_branch="main")


@pytest.fixture
def repo_config() -> RepositoryConfig:
    """Active config tracking both default spec files."""
    return RepositoryConfig(
        name="petstore",
        repository_url="https://git.example.com/acme/petstore.git",
        branch="main",
        spec_paths=("openapi/orders.yaml", "openapi/users.yaml"),
        active=True,
    )
