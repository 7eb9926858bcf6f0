"""Credential resolution for repository access.

The auth kind stored on a config is resolved once into a ``Credential``.
VCS adapters only ever talk to that capability, so they never need to know
whether a token, an SSH key, or nothing at all is behind it.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from urllib.parse import quote, urlsplit, urlunsplit

from spec_sync.entities.repository import AuthType, SecretRef

logger = logging.getLogger(__name__)

REDACTED = "***"


@dataclass(frozen=True)
class Credential:
    """Anonymous access. Base for all credential kinds."""

    def authenticated_url(self, url: str) -> str:
        """URL to hand to git for network operations."""
        return url

    def environment(self) -> dict[str, str]:
        """Extra environment variables for git subprocesses."""
        return {}

    def redact(self, text: str) -> str:
        """Strip secret material from ``text`` (e.g. git error output)."""
        return text


ANONYMOUS = Credential()


@dataclass(frozen=True)
class TokenCredential(Credential):
    """HTTPS access token, sent as the URL user name."""

    token: str
    username: str | None = None

    def authenticated_url(self, url: str) -> str:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https"):
            return url
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
        secret = quote(self.token, safe="")
        userinfo = f"{quote(self.username, safe='')}:{secret}" if self.username else secret
        return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))

    def redact(self, text: str) -> str:
        if not self.token:
            return text
        return text.replace(quote(self.token, safe=""), REDACTED).replace(self.token, REDACTED)

    def __repr__(self) -> str:
        return f"TokenCredential(username={self.username!r}, token={REDACTED!r})"


@dataclass(frozen=True)
class SshKeyCredential(Credential):
    """Private key file used through ``GIT_SSH_COMMAND``."""

    key_path: str

    def environment(self) -> dict[str, str]:
        return {
            "GIT_SSH_COMMAND": (
                f"ssh -i {shlex.quote(self.key_path)} -o IdentitiesOnly=yes -o StrictHostKeyChecking=accept-new"
            )
        }


@runtime_checkable
class CredentialResolver(Protocol):
    """Resolves a config's auth settings to a usable credential."""

    def resolve(self, auth_type: AuthType, secret_ref: SecretRef | None) -> Credential | None: ...


def _build(auth_type: AuthType, value: str) -> Credential:
    if auth_type is AuthType.TOKEN:
        return TokenCredential(token=value)
    return SshKeyCredential(key_path=value)


class EnvCredentialResolver:
    """Reads secrets from ``<prefix><SECRET_ID>`` environment variables.

    The secret id is upper-cased with non-alphanumerics replaced by ``_``.
    For ``ssh-key`` the variable holds the path of the private key file.
    """

    def __init__(self, prefix: str = "SPEC_SYNC_SECRET_") -> None:
        self._prefix = prefix

    def env_var(self, secret_id: str) -> str:
        return self._prefix + re.sub(r"[^A-Za-z0-9]", "_", secret_id).upper()

    def resolve(self, auth_type: AuthType, secret_ref: SecretRef | None) -> Credential | None:
        if auth_type is AuthType.NONE or secret_ref is None:
            return None
        var = self.env_var(secret_ref.secret_id)
        value = os.environ.get(var)
        if not value:
            logger.warning("Secret %s not found (expected in $%s)", secret_ref.secret_id, var)
            return None
        return _build(auth_type, value)


class StaticCredentialResolver:
    """Serves secrets from an in-memory mapping of secret id to value."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def resolve(self, auth_type: AuthType, secret_ref: SecretRef | None) -> Credential | None:
        if auth_type is AuthType.NONE or secret_ref is None:
            return None
        value = self._secrets.get(secret_ref.secret_id)
        if value is None:
            logger.warning("Secret %s not found", secret_ref.secret_id)
            return None
        return _build(auth_type, value)
