"""
Collaborator protocols consumed by the kernel.

The kernel never reaches for the wall clock, an id library or a secrets store
directly. It depends on these structural protocols instead, so tests can pass
deterministic fakes and hosts can plug in their own implementations.

Architecture:
    ::

        protocols.py
        ├── Clock            now() / monotonic_ticks()
        ├── IdGenerator      new_opaque_id()
        ├── SecretsSource    try_get_secret(key)
        └── HealthCheck      name + async check(cancellation)

    Default implementations live in :mod:`gridkernel.core.timestamps`
    (``SystemClock``, ``UlidGenerator``) and :mod:`gridkernel.core.secrets`.

Tags:
    protocol, contracts, grid-kernel

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from gridkernel.core.health import HealthCheckResult, HealthStatus


@runtime_checkable
class Clock(Protocol):
    """Source of timestamps for contexts and health results."""

    def now(self) -> datetime:
        """Current timezone-aware UTC time."""
        ...

    def monotonic_ticks(self) -> int:
        """Monotonic counter in nanoseconds, for durations only."""
        ...


@runtime_checkable
class IdGenerator(Protocol):
    """Mints correlation, causation-leaf, node and instance ids."""

    def new_opaque_id(self) -> str:
        ...


@runtime_checkable
class SecretsSource(Protocol):
    """A single place secrets can come from."""

    def try_get_secret(self, key: str) -> tuple[bool, str | None]:
        """Return ``(True, value)`` when the source knows *key*, else ``(False, None)``."""
        ...


@runtime_checkable
class HealthCheck(Protocol):
    """One monitored subsystem.

    ``check`` may return a bare :class:`HealthStatus` or a full
    :class:`HealthCheckResult` when it has detail to report. It should
    return promptly once *cancellation* is set.

    Implementations may also expose a ``required`` attribute; when it is
    ``False`` a failure only degrades the node and does not fail readiness.
    """

    name: str

    async def check(self, cancellation: asyncio.Event) -> HealthStatus | HealthCheckResult:
        ...


__all__ = ["Clock", "IdGenerator", "SecretsSource", "HealthCheck"]
