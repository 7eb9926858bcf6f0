"""Version-control adapters."""

from spec_sync.vcs.base import CloneResult, VcsAdapter
from spec_sync.vcs.git_adapter import GitAdapter

__all__ = ["CloneResult", "GitAdapter", "VcsAdapter"]
