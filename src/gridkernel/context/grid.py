"""
Grid-wide context: correlation id, causation chain and metadata.

A :class:`GridContext` is produced at a flow's entry point (by a mapper) and
read everywhere downstream. It is immutable: every "change" returns a new
instance, so concurrently running children can never corrupt each other's
lineage.

Causation model:
    ::

        root        correlation=C  chain=()          leaf=A
        └─ child    correlation=C  chain=(A,)        leaf=B
           └─ child correlation=C  chain=(A, B)      leaf=D

    ``derive_child`` appends the parent's leaf to the chain and mints a new
    leaf. The correlation id never changes below a root. Revisiting the same
    logical operation appends a fresh id, so cycles are representable; the
    only guard is ``max_depth``.

Tags:
    grid-kernel, context, correlation, causation, immutable-state

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

from gridkernel.core.errors import (
    ChainTooDeepError,
    ContextNotInitializedError,
    KernelInvariantError,
)
from gridkernel.core.protocols import Clock, IdGenerator
from gridkernel.core.timestamps import to_iso8601, utc_now


def _freeze(metadata: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True)
class GridContext:
    """Immutable grid-wide context snapshot.

    Attributes:
        correlation_id: Shared by every operation of one originating request
        leaf_id: Id of the operation this context currently represents
        causation_chain: Ancestor leaf ids, root first
        metadata: Read-only string map propagated with the context
        tenant_id: Optional tenant scope
        project_id: Optional project scope
        created_at: When this snapshot was created
    """

    correlation_id: str
    leaf_id: str | None = None
    causation_chain: tuple[str, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), hash=False)
    tenant_id: str | None = None
    project_id: str | None = None
    created_at: datetime = field(default_factory=utc_now, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "causation_chain", tuple(self.causation_chain))
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", _freeze(self.metadata))

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def empty(cls) -> GridContext:
        """The context observed when nothing has been made ambient."""
        return _EMPTY

    @classmethod
    def create_root(
        cls,
        id_generator: IdGenerator,
        *,
        correlation_id: str | None = None,
        causation_id: str | None = None,
        metadata: Mapping[str, str] | None = None,
        tenant_id: str | None = None,
        project_id: str | None = None,
        clock: Clock | None = None,
    ) -> GridContext:
        """Start a new flow, minting a correlation id when none is supplied.

        An upstream *causation_id* (e.g. from an inbound header) seeds the
        chain so the remote cause stays visible in the lineage.
        """
        return cls(
            correlation_id=correlation_id or id_generator.new_opaque_id(),
            leaf_id=id_generator.new_opaque_id(),
            causation_chain=(causation_id,) if causation_id else (),
            metadata=_freeze(metadata),
            tenant_id=tenant_id,
            project_id=project_id,
            created_at=clock.now() if clock is not None else utc_now(),
        )

    # ── Derived views ────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return bool(self.correlation_id)

    @property
    def causation_id(self) -> str | None:
        """Immediate cause: the parent operation's id."""
        return self.causation_chain[-1] if self.causation_chain else None

    @property
    def depth(self) -> int:
        return len(self.causation_chain)

    @property
    def lineage(self) -> tuple[str, ...]:
        """Causation chain followed by the current leaf."""
        if self.leaf_id is None:
            return self.causation_chain
        return (*self.causation_chain, self.leaf_id)

    # ── Derivation ───────────────────────────────────────────────────

    def derive_child(
        self,
        id_generator: IdGenerator,
        *,
        max_depth: int,
        clock: Clock | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> GridContext:
        """Return a child context one causation step below this one.

        Raises:
            ContextNotInitializedError: This is the empty context
            ChainTooDeepError: The child chain would exceed *max_depth*
            KernelInvariantError: This context is already deeper than allowed
        """
        if not self.is_initialized or self.leaf_id is None:
            raise ContextNotInitializedError(
                "Cannot derive a child from an uninitialized GridContext. "
                "Create a root context with a mapper or GridContext.create_root() first."
            )
        if self.depth > max_depth:
            raise KernelInvariantError(
                f"Causation chain depth {self.depth} already exceeds maximum of {max_depth}",
                context={"correlation_id": self.correlation_id},
            )
        child_depth = self.depth + 1
        if child_depth > max_depth:
            raise ChainTooDeepError(child_depth, max_depth, self.correlation_id)

        merged = dict(self.metadata)
        if metadata:
            merged.update(metadata)

        return replace(
            self,
            leaf_id=id_generator.new_opaque_id(),
            causation_chain=(*self.causation_chain, self.leaf_id),
            metadata=_freeze(merged),
            created_at=clock.now() if clock is not None else utc_now(),
        )

    def with_metadata(self, **items: str) -> GridContext:
        """Return a copy with *items* merged into the metadata."""
        merged = dict(self.metadata)
        merged.update(items)
        return replace(self, metadata=_freeze(merged))

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for logging and serialization."""
        return {
            "correlation_id": self.correlation_id,
            "leaf_id": self.leaf_id,
            "causation_chain": list(self.causation_chain),
            "metadata": dict(self.metadata),
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "created_at": to_iso8601(self.created_at),
        }


_EMPTY = GridContext(correlation_id="")


__all__ = ["GridContext"]
