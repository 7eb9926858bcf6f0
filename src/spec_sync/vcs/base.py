"""VCS adapter protocol consumed by the sync orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from spec_sync.credentials import Credential


@dataclass(frozen=True)
class CloneResult:
    """Where a clone landed and the revision it checked out."""

    local_path: str
    head_revision: str


@runtime_checkable
class VcsAdapter(Protocol):
    """Blocking version-control operations on independent working copies.

    Implementations raise the ``VcsError`` subclasses from ``spec_sync.errors``
    and must be safe to use from several threads at once, as long as no two
    threads touch the same working copy.
    """

    def clone(self, url: str, branch: str, credential: Credential) -> CloneResult: ...

    def pull(self, local_path: str, credential: Credential) -> str: ...

    def current_revision(self, local_path: str) -> str: ...

    def remote_revision(self, local_path: str, credential: Credential) -> str: ...

    def diff(self, local_path: str, old_revision: str, new_revision: str) -> set[str]: ...

    def remove(self, local_path: str) -> None: ...
