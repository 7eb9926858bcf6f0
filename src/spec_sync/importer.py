"""Artifact importers that turn a local spec file into a catalog entry."""

from __future__ import annotations

import logging
from pathlib import Path  # noqa: TC003
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from spec_sync.errors import SpecImportError

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    """A catalog entry created or updated by an import."""

    name: str
    version: str = ""

    @property
    def entry_id(self) -> str:
        return f"{self.name}:{self.version}" if self.version else self.name


@runtime_checkable
class Importer(Protocol):
    """Imports one file. Must be safe to call from several threads."""

    def import_from_local_file(self, path: Path) -> CatalogEntry: ...


class HttpArtifactImporter:
    """Uploads spec files to the catalog's artifact upload endpoint.

    The catalog answers a successful upload with ``name:version`` of the
    service it created or updated.
    """

    UPLOAD_PATH = "/api/artifact/upload"

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the importer.

        Args:
            base_url: Catalog base URL.
            token: Optional bearer token.
            timeout: Per-request timeout in seconds.
            client: Preconfigured client (tests inject one with a mock transport).
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        self._owns_client = client is None

    def import_from_local_file(self, path: Path) -> CatalogEntry:
        source = str(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise SpecImportError(source, f"Cannot read {path.name}: {e}") from e

        try:
            response = self._client.post(
                self.UPLOAD_PATH,
                params={"mainArtifact": "true"},
                files={"file": (path.name, content)},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text.strip()[:200]
            raise SpecImportError(
                source,
                f"Catalog rejected {path.name} (HTTP {e.response.status_code}): {detail}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise SpecImportError(source, f"Catalog upload failed for {path.name}: {e}") from e

        entry = self._parse_entry(response.text, fallback=path.stem)
        logger.info("Imported %s as %s", path.name, entry.entry_id)
        return entry

    @staticmethod
    def _parse_entry(body: str, fallback: str) -> CatalogEntry:
        text = body.strip().strip('"')
        if not text:
            return CatalogEntry(name=fallback)
        name, _, version = text.rpartition(":")
        if not name:
            return CatalogEntry(name=text)
        return CatalogEntry(name=name, version=version)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
