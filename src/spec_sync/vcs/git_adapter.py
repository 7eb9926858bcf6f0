"""GitPython implementation of the VCS adapter."""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from git.exc import BadName, BadObject

from spec_sync.errors import (
    RefNotFoundError,
    RevisionNotFoundError,
    TransportError,
    VcsError,
    WorkingCopyMissingError,
)
from spec_sync.vcs.base import CloneResult

if TYPE_CHECKING:
    from spec_sync.credentials import Credential

logger = logging.getLogger(__name__)

_REF_NOT_FOUND_MARKERS = ("remote branch", "couldn't find remote ref", "not found in upstream")


def _slug(url: str) -> str:
    """Short filesystem-friendly name derived from a repository URL."""
    tail = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1].removesuffix(".git")
    return re.sub(r"[^A-Za-z0-9._-]", "-", tail) or "repo"


class GitAdapter:
    """Shallow, single-branch working copies managed with GitPython.

    The ``origin`` remote of every working copy holds the plain repository
    URL. Credentials are injected per network call and never written to disk.
    """

    def __init__(self, workspace_dir: Path) -> None:
        """Initialize the adapter.

        Args:
            workspace_dir: Parent directory for all working copies.
        """
        self._workspace_dir = workspace_dir

    @property
    def workspace_dir(self) -> Path:
        return self._workspace_dir

    def clone(self, url: str, branch: str, credential: Credential) -> CloneResult:
        self._workspace_dir.mkdir(parents=True, exist_ok=True)
        target = Path(tempfile.mkdtemp(prefix=f"{_slug(url)}-", dir=self._workspace_dir))
        logger.info("Cloning %s (branch %s) to %s", url, branch, target)

        try:
            repo = Repo.clone_from(
                credential.authenticated_url(url),
                target,
                env=credential.environment() or None,
                depth=1,
                single_branch=True,
                branch=branch,
            )
        except GitCommandError as e:
            shutil.rmtree(target, ignore_errors=True)
            # Never chain: the raw command line may contain the token.
            raise self._classify(e, credential, url=url, branch=branch) from None

        with repo:
            repo.remotes.origin.set_url(url)
            head = repo.head.commit.hexsha

        logger.info("Cloned %s at %s", url, head[:8])
        return CloneResult(local_path=str(target), head_revision=head)

    def pull(self, local_path: str, credential: Credential) -> str:
        with self._open(local_path) as repo:
            url = repo.remotes.origin.url
            branch = repo.active_branch.name
            logger.info("Pulling %s (branch %s) into %s", url, branch, local_path)
            try:
                with repo.git.custom_environment(**credential.environment()):
                    repo.git.pull("--ff-only", credential.authenticated_url(url), branch)
            except GitCommandError as e:
                raise self._classify(e, credential, url=url, branch=branch) from None
            return repo.head.commit.hexsha

    def current_revision(self, local_path: str) -> str:
        with self._open(local_path) as repo:
            return repo.head.commit.hexsha

    def remote_revision(self, local_path: str, credential: Credential) -> str:
        with self._open(local_path) as repo:
            url = repo.remotes.origin.url
            branch = repo.active_branch.name
            try:
                with repo.git.custom_environment(**credential.environment()):
                    output = repo.git.ls_remote(credential.authenticated_url(url), f"refs/heads/{branch}")
            except GitCommandError as e:
                raise self._classify(e, credential, url=url, branch=branch) from None

        if not output.strip():
            raise RefNotFoundError(
                f"Branch {branch} not found at {url}",
                details={"url": url, "branch": branch},
            )
        return output.split()[0]

    def diff(self, local_path: str, old_revision: str, new_revision: str) -> set[str]:
        with self._open(local_path) as repo:
            try:
                old = repo.commit(old_revision)
                new = repo.commit(new_revision)
                entries = old.diff(new)
            except (BadName, BadObject, ValueError, GitCommandError) as e:
                raise RevisionNotFoundError(
                    f"Cannot diff {old_revision[:8]}..{new_revision[:8]}: {e}",
                    details={"old_revision": old_revision, "new_revision": new_revision},
                ) from e

            changed: set[str] = set()
            for entry in entries:
                changed.update(p for p in (entry.a_path, entry.b_path) if p)

        logger.debug("%d paths changed between %s and %s", len(changed), old_revision[:8], new_revision[:8])
        return changed

    def remove(self, local_path: str) -> None:
        path = Path(local_path).resolve()
        if not path.exists():
            return
        workspace = self._workspace_dir.resolve()
        if workspace not in path.parents:
            raise ValueError(f"Refusing to remove {path}: outside workspace {workspace}")
        logger.info("Removing working copy %s", path)
        shutil.rmtree(path)

    def _open(self, local_path: str) -> Repo:
        try:
            return Repo(local_path)
        except (NoSuchPathError, InvalidGitRepositoryError) as e:
            raise WorkingCopyMissingError(
                f"No working copy at {local_path}",
                details={"local_path": local_path},
            ) from e

    @staticmethod
    def _classify(error: GitCommandError, credential: Credential, **details: Any) -> VcsError:
        stderr = credential.redact(str(error.stderr or "")).strip()
        message = stderr or credential.redact(str(error))
        if any(marker in message.lower() for marker in _REF_NOT_FOUND_MARKERS):
            return RefNotFoundError(message, details=details)
        return TransportError(message, details=details)
