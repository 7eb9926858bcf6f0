"""Outcome models for sync operations."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from spec_sync.entities.repository import RepositoryConfig  # noqa: TC001


class PathFailure(BaseModel):
    """A tracked path whose import failed."""

    path: str
    message: str


class SyncReport(BaseModel):
    """What a single sync or forced sync did to one repository."""

    repository_id: str
    repository_name: str
    forced: bool = False
    changed: bool = True
    imported_paths: list[str] = Field(default_factory=list)
    failed_paths: list[PathFailure] = Field(default_factory=list)
    skipped_paths: list[str] = Field(default_factory=list)
    commit_hash: str | None = None
    previous_commit_hash: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def summary(self) -> str:
        """One-line human readable outcome."""
        if self.error and not self.imported_paths and not self.failed_paths:
            return f"Sync failed: {self.error}"
        if not self.changed:
            return "No changes detected"
        text = f"{len(self.imported_paths)} specs imported"
        if self.failed_paths:
            text += f", {len(self.failed_paths)} failed"
        return text


class SyncResult(BaseModel):
    """New repository state together with the report that produced it."""

    config: RepositoryConfig
    report: SyncReport


class TickReport(BaseModel):
    """Aggregate outcome of one scheduler tick."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    finished_at: datetime | None = None
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    reports: list[SyncReport] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped
