"""Secrets sources and first-match composition.

A node reads credentials during bootstrap from one or more places: the
environment, mounted secret files (Docker/Kubernetes), or an in-memory map in
tests. :class:`CompositeSecretsSource` asks each source in order and returns
the first hit.

Architecture:
    ::

        CompositeSecretsSource
          sources: [FileSecretBackend, EnvSecretBackend, ...]
              │ try_get_secret(key), in order, stops at first hit
              ▼
          (found, value)

Examples:
    >>> source = CompositeSecretsSource([
    ...     FileSecretBackend("/run/secrets"),
    ...     EnvSecretBackend(),
    ... ])
    >>> found, token = source.try_get_secret("api_token")
    >>> password = source.resolve("db_password")  # raises MissingSecretError

Guardrails:
    - Secrets should NEVER be logged (use the SecretValue wrapper)
    - No caching: every lookup goes back to the sources
    - No precedence beyond source order

Tags:
    secrets, credentials, configuration, grid-kernel
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from gridkernel.core.errors import MissingSecretError
from gridkernel.core.protocols import SecretsSource
from gridkernel.core.reducers import reduce_by_priority

_NOT_FOUND: tuple[bool, str | None] = (False, None)

# Sentinel for distinguishing "no default" from None
_SENTINEL = object()


class SecretValue:
    """Wrapper for secret values that prevents accidental logging.

    The string representation shows ``[REDACTED]`` instead of the value.
    Use ``.get_secret()`` to access the actual value.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def get_secret(self) -> str:
        """Get the actual secret value."""
        return self._value

    def __str__(self) -> str:
        return "[REDACTED]"

    def __repr__(self) -> str:
        return "SecretValue('[REDACTED]')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretValue):
            return self._value == other._value
        return False

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

    def __len__(self) -> int:
        return len(self._value)


# ---------------------------------------------------------------------------
# Secret backends
# ---------------------------------------------------------------------------


class SecretBackend(ABC):
    """Abstract base for secret backends.

    Subclasses implement :meth:`get`; :meth:`try_get_secret` adapts it to the
    :class:`~gridkernel.core.protocols.SecretsSource` protocol.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def get(self, name: str) -> str | None:
        """Retrieve a secret by name, or ``None`` if this backend lacks it."""
        ...

    def try_get_secret(self, key: str) -> tuple[bool, str | None]:
        value = self.get(key)
        if value is None:
            return _NOT_FOUND
        return True, value


class EnvSecretBackend(SecretBackend):
    """Resolve secrets from environment variables.

    Tries multiple naming conventions in order:
    1. ``{KEY}`` (direct name)
    2. ``GRID_SECRET_{KEY}`` (explicit prefix)
    3. ``{KEY}_SECRET`` (suffixed)
    """

    def __init__(self, prefix: str = "GRID_SECRET_"):
        self.prefix = prefix

    def get(self, name: str) -> str | None:
        key_upper = name.upper()
        for candidate in (key_upper, f"{self.prefix}{key_upper}", f"{key_upper}_SECRET"):
            value = os.environ.get(candidate)
            if value is not None:
                return value
        return None


class FileSecretBackend(SecretBackend):
    """Resolve secrets from one file per key.

    Designed for Docker secrets (``/run/secrets/``) and Kubernetes mounted
    secrets. Contents are stripped of surrounding whitespace.
    """

    def __init__(self, secrets_dir: str | Path = "/run/secrets"):
        self.secrets_dir = Path(secrets_dir)

    def get(self, name: str) -> str | None:
        secret_path = self.secrets_dir / name
        # Keys must not escape the secrets directory.
        if secret_path.parent != self.secrets_dir or not secret_path.is_file():
            return None
        try:
            return secret_path.read_text().strip()
        except OSError:
            return None


class DictSecretBackend(SecretBackend):
    """In-memory secret backend for testing.

    NOT for production use: stores secrets in plain memory.
    """

    def __init__(self, secrets: dict[str, str] | None = None):
        self._secrets = dict(secrets) if secrets else {}

    def get(self, name: str) -> str | None:
        return self._secrets.get(name)

    def set(self, key: str, value: str) -> None:
        """Set a secret value (for testing)."""
        self._secrets[key] = value


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


def _source_name(source: SecretsSource) -> str:
    return getattr(source, "name", type(source).__name__)


class CompositeSecretsSource:
    """First-match lookup over an ordered sequence of sources.

    Args:
        sources: Sources to try in order
    """

    def __init__(self, sources: Iterable[SecretsSource] | None = None):
        self._sources: list[SecretsSource] = list(sources) if sources is not None else []

    @property
    def sources(self) -> tuple[SecretsSource, ...]:
        return tuple(self._sources)

    @property
    def name(self) -> str:
        return "composite"

    def _probe(self, key: str, tried: list[str]) -> Iterator[tuple[bool, str | None]]:
        for source in self._sources:
            tried.append(_source_name(source))
            yield source.try_get_secret(key)

    def _lookup(self, key: str, tried: list[str]) -> tuple[bool, str | None]:
        return reduce_by_priority(
            self._probe(key, tried),
            priority=lambda outcome: 1 if outcome[0] else 0,
            default=_NOT_FOUND,
            ceiling=1,
        )

    def try_get_secret(self, key: str) -> tuple[bool, str | None]:
        """Return the first source's value for *key*."""
        return self._lookup(key, [])

    def resolve(self, key: str, default: Any = _SENTINEL) -> str | None:
        """Resolve *key*, falling back to *default* or raising.

        Raises:
            MissingSecretError: If no source has the secret and no default given
        """
        tried: list[str] = []
        found, value = self._lookup(key, tried)
        if found:
            return value
        if default is not _SENTINEL:
            return default
        raise MissingSecretError(key, tried)

    def resolve_secret_value(self, key: str) -> SecretValue:
        """Resolve a secret and wrap it in :class:`SecretValue`."""
        value = self.resolve(key)
        return SecretValue(value or "")

    def contains(self, key: str) -> bool:
        return self.try_get_secret(key)[0]

    def add_source(self, source: SecretsSource, priority: int = -1) -> None:
        """Add a source.

        Args:
            source: Source to add
            priority: Position in the source list (-1 = end)
        """
        if priority < 0:
            self._sources.append(source)
        else:
            self._sources.insert(priority, source)


__all__ = [
    "SecretValue",
    "SecretBackend",
    "EnvSecretBackend",
    "FileSecretBackend",
    "DictSecretBackend",
    "CompositeSecretsSource",
]
