"""Repository configuration and its sync state transitions."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import PurePosixPath
from typing import Any
from uuid import uuid4

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AuthType(StrEnum):
    """How the engine authenticates against the remote repository."""

    NONE = "none"
    TOKEN = "token"
    SSH_KEY = "ssh-key"


class SecretRef(BaseModel):
    """Reference to an externally stored secret."""

    model_config = ConfigDict(frozen=True)

    secret_id: str
    name: str | None = None


class CatalogRef(BaseModel):
    """A catalog entry produced from a tracked path."""

    model_config = ConfigDict(frozen=True)

    entry_id: str
    name: str
    version: str = ""
    source_path: str = ""


# Fields written by syncs. Everything else on a config belongs to the user.
SYNC_STATE_FIELDS = (
    "local_path",
    "last_commit_hash",
    "last_import_date",
    "last_import_error",
    "last_sync_attempt",
    "catalog_refs",
)


def normalize_spec_path(raw: str) -> str:
    """Normalize a tracked path to a clean relative POSIX path.

    Raises:
        ValueError: If the path is empty, absolute, or escapes the repository.
    """
    value = raw.strip().replace("\\", "/")
    if not value:
        raise ValueError("Spec path must not be empty")
    path = PurePosixPath(value)
    if path.is_absolute():
        raise ValueError(f"Spec path must be relative: {raw}")
    parts = [p for p in path.parts if p != "."]
    if not parts or ".." in parts:
        raise ValueError(f"Spec path must stay inside the repository: {raw}")
    return "/".join(parts)


class RepositoryConfig(BaseModel):
    """One tracked repository and its sync state.

    Instances are immutable. Every state change goes through one of the
    ``with_*`` transitions, which return a new config; the caller persists it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(min_length=1)
    repository_url: str = Field(min_length=1)
    branch: str | None = None
    spec_paths: tuple[str, ...] = ()
    cron_expression: str | None = None
    active: bool = False

    # Working copy state
    local_path: str | None = None
    last_commit_hash: str | None = None
    last_import_date: datetime | None = None
    last_import_error: str | None = None
    last_sync_attempt: datetime | None = None

    # Authentication
    auth_type: AuthType = AuthType.NONE
    secret_ref: SecretRef | None = None

    catalog_refs: tuple[CatalogRef, ...] = ()
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @field_validator("spec_paths", mode="before")
    @classmethod
    def normalize_spec_paths(cls, v: Any) -> tuple[str, ...]:
        """Normalize paths and drop duplicates while keeping their order."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        seen: dict[str, None] = {}
        for raw in v:
            seen.setdefault(normalize_spec_path(raw), None)
        return tuple(seen)

    @field_validator("cron_expression")
    @classmethod
    def validate_cron(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        if not croniter.is_valid(v.strip()):
            raise ValueError(f"Invalid cron expression: {v}")
        return v.strip()

    @field_validator("branch")
    @classmethod
    def blank_branch_is_default(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @model_validator(mode="after")
    def check_auth(self) -> RepositoryConfig:
        if self.auth_type is not AuthType.NONE and self.secret_ref is None:
            raise ValueError(f"auth_type {self.auth_type} requires a secret_ref")
        return self

    def effective_branch(self, default: str) -> str:
        """Configured branch, or ``default`` when none is set."""
        return self.branch or default

    # -- State transitions -------------------------------------------------

    def activated(self) -> RepositoryConfig:
        return self.model_copy(update={"active": True})

    def deactivated(self) -> RepositoryConfig:
        return self.model_copy(update={"active": False})

    def with_working_copy(self, local_path: str) -> RepositoryConfig:
        """Record a freshly cloned working copy."""
        return self.model_copy(update={"local_path": local_path})

    def without_working_copy(self) -> RepositoryConfig:
        """Forget the working copy and the revision baseline that came with it."""
        return self.model_copy(update={"local_path": None, "last_commit_hash": None})

    def with_sync_completed(
        self,
        revision: str,
        error: str | None,
        new_refs: list[CatalogRef] | None = None,
        at: datetime | None = None,
    ) -> RepositoryConfig:
        """Advance the baseline after every selected path has been attempted.

        ``error`` aggregates per-path import failures; ``None`` clears any
        previous error.
        """
        return self.model_copy(
            update={
                "last_commit_hash": revision,
                "last_import_date": at or datetime.now(tz=UTC),
                "last_import_error": error,
                "catalog_refs": self._merge_refs(new_refs or []),
            }
        )

    def with_error(self, message: str) -> RepositoryConfig:
        """Record a failed step without touching the revision baseline."""
        return self.model_copy(update={"last_import_error": message})

    def with_attempt(self, at: datetime) -> RepositoryConfig:
        """Stamp the time a sync of this repository was last started."""
        return self.model_copy(update={"last_sync_attempt": at})

    def with_sync_state_of(self, other: RepositoryConfig) -> RepositoryConfig:
        """Take the sync-owned fields from ``other`` and keep everything else.

        Lets a finished sync write its outcome onto the stored record without
        reverting edits (activation, tracked paths, schedule) made meanwhile.
        """
        return self.model_copy(update={f: getattr(other, f) for f in SYNC_STATE_FIELDS})

    def with_changes(self, **changes: Any) -> RepositoryConfig:
        """Apply user edits, re-running field validation."""
        data = self.model_dump()
        data.update(changes)
        return RepositoryConfig.model_validate(data)

    def _merge_refs(self, new_refs: list[CatalogRef]) -> tuple[CatalogRef, ...]:
        merged = {ref.entry_id: ref for ref in self.catalog_refs}
        for ref in new_refs:
            merged[ref.entry_id] = ref
        return tuple(merged.values())
