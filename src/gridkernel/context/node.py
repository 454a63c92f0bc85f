"""
Node-wide context: process-lifetime identity.

One :class:`NodeContext` exists per process. It is created once by
:func:`initialize_node_context` during bootstrap and shared read-only by
every flow afterwards.
"""

from __future__ import annotations

import os
import socket
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from gridkernel.core.errors import ContextNotInitializedError
from gridkernel.core.protocols import Clock, IdGenerator
from gridkernel.core.settings import KernelSettings, get_settings
from gridkernel.core.timestamps import SystemClock, UlidGenerator, to_iso8601


@dataclass(frozen=True)
class NodeContext:
    """Immutable identity of the running node.

    ``node_id`` names the logical node (shared by all replicas);
    ``instance_id`` is minted per process.
    """

    node_id: str
    instance_id: str
    started_at: datetime
    version: str = "0.0.0"
    studio_id: str = "default"
    environment: str = "development"
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), hash=False)
    machine_name: str = field(default_factory=socket.gethostname)
    process_id: int = field(default_factory=os.getpid)

    def __post_init__(self) -> None:
        if not self.node_id:
            raise ValueError("node_id must not be empty")
        if not isinstance(self.tags, MappingProxyType):
            object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    @classmethod
    def create(
        cls,
        settings: KernelSettings | None = None,
        *,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> NodeContext:
        """Build a node context from settings, minting the instance id."""
        settings = settings or get_settings()
        clock = clock or SystemClock()
        id_generator = id_generator or UlidGenerator()
        return cls(
            node_id=settings.node_id,
            instance_id=id_generator.new_opaque_id(),
            started_at=clock.now(),
            version=settings.version,
            studio_id=settings.studio_id,
            environment=settings.environment,
            tags=tags or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "instance_id": self.instance_id,
            "started_at": to_iso8601(self.started_at),
            "version": self.version,
            "studio_id": self.studio_id,
            "environment": self.environment,
            "tags": dict(self.tags),
            "machine_name": self.machine_name,
            "process_id": self.process_id,
        }


# ── Process-wide singleton ───────────────────────────────────────────────

_node_context: NodeContext | None = None
_node_lock = threading.Lock()


def initialize_node_context(
    settings: KernelSettings | None = None,
    *,
    clock: Clock | None = None,
    id_generator: IdGenerator | None = None,
    tags: Mapping[str, str] | None = None,
) -> NodeContext:
    """Create the process's NodeContext; later calls return the same instance."""
    global _node_context
    with _node_lock:
        if _node_context is None:
            _node_context = NodeContext.create(
                settings, clock=clock, id_generator=id_generator, tags=tags
            )
        return _node_context


def current_node_context() -> NodeContext:
    """The process's NodeContext.

    Raises:
        ContextNotInitializedError: If :func:`initialize_node_context` has not run
    """
    if _node_context is None:
        raise ContextNotInitializedError(
            "NodeContext has not been initialized. Call initialize_node_context() during bootstrap."
        )
    return _node_context


def peek_node_context() -> NodeContext | None:
    """The process's NodeContext, or ``None`` before bootstrap."""
    return _node_context


def reset_node_context() -> None:
    """Forget the process NodeContext (test isolation only)."""
    global _node_context
    with _node_lock:
        _node_context = None


__all__ = [
    "NodeContext",
    "initialize_node_context",
    "current_node_context",
    "peek_node_context",
    "reset_node_context",
]
