"""
Operation-scoped context: timing and outcome of one logical operation.

Lifecycle:

    .. code-block:: text

        OperationTracker.begin("charge_card"):

        ┌─────────────────────────────────────────────┐
        │ 1. Derive child GridContext (may raise)     │
        │ 2. Open OperationContext (PENDING)          │
        │ 3. Make child + operation ambient           │
        │ 4. ─── yield op ───  (user code runs)       │
        │ 5a. SUCCEEDED (normal exit)                 │
        │ 5b. FAILED    (exception, re-raised)        │
        │ 5c. CANCELLED (asyncio.CancelledError)      │
        │ 6. Restore previous ambient values (always) │
        └─────────────────────────────────────────────┘

An :class:`OperationContext` is owned by the call path that opened it. It is
closed exactly once; later ``complete``/``fail``/``cancel`` calls are ignored.

Example:
    >>> tracker = OperationTracker()
    >>> with grid_carrier.scope(root):
    ...     with tracker.begin("load_profile") as op:
    ...         op.add_metadata("user_id", "u-42")
    ...         profile = await repo.load("u-42")
    >>> op.outcome
    <Outcome.SUCCEEDED: 'succeeded'>

Tags:
    grid-kernel, context, operation, timing, outcome

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import contextvars
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from gridkernel.context.carrier import ContextCarrier, grid_carrier
from gridkernel.context.grid import GridContext
from gridkernel.core.logging import get_logger
from gridkernel.core.protocols import Clock, IdGenerator
from gridkernel.core.settings import get_settings
from gridkernel.core.timestamps import SystemClock, UlidGenerator, to_iso8601

logger = get_logger(__name__)


class Outcome(str, Enum):
    """Terminal state of an operation (PENDING while open)."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OperationContext:
    """Per-operation record of timing and outcome.

    ``parent_grid_context`` is the context the operation was opened under;
    ``grid_context`` is the derived child that is ambient while it runs, and
    whose leaf id is ``operation_id``.
    """

    operation_id: str
    operation_name: str
    parent_grid_context: GridContext
    grid_context: GridContext
    started_at: datetime
    ended_at: datetime | None = None
    outcome: Outcome = Outcome.PENDING
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    _clock: Clock = field(default_factory=SystemClock, repr=False, compare=False)
    _started_ticks: int = field(default=0, repr=False, compare=False)
    _ended_ticks: int | None = field(default=None, repr=False, compare=False)

    @property
    def correlation_id(self) -> str:
        return self.grid_context.correlation_id

    @property
    def causation_id(self) -> str | None:
        return self.grid_context.causation_id

    @property
    def is_pending(self) -> bool:
        return self.outcome is Outcome.PENDING

    @property
    def duration_ms(self) -> float | None:
        """Elapsed milliseconds, or ``None`` while pending."""
        if self._ended_ticks is None:
            return None
        return (self._ended_ticks - self._started_ticks) / 1_000_000

    def add_metadata(self, key: str, value: Any) -> None:
        """Attach metadata while the operation is still open."""
        if not key:
            raise ValueError("metadata key must not be empty")
        if not self.is_pending:
            raise RuntimeError(f"Operation {self.operation_id} has already ended")
        self.metadata[key] = value

    def _close(self, outcome: Outcome, error: str | None = None) -> bool:
        if not self.is_pending:
            return False
        self._ended_ticks = self._clock.monotonic_ticks()
        self.ended_at = self._clock.now()
        self.outcome = outcome
        self.error = error
        return True

    def complete(self) -> bool:
        """Mark succeeded. Returns False if the operation had already ended."""
        return self._close(Outcome.SUCCEEDED)

    def fail(self, error: str) -> bool:
        """Mark failed with *error*. Returns False if already ended."""
        if not error:
            raise ValueError("error message must not be empty")
        return self._close(Outcome.FAILED, error)

    def cancel(self, reason: str = "cancelled") -> bool:
        """Mark cancelled. Returns False if already ended."""
        return self._close(Outcome.CANCELLED, reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_name": self.operation_name,
            "correlation_id": self.correlation_id,
            "causation_id": self.causation_id,
            "started_at": to_iso8601(self.started_at),
            "ended_at": to_iso8601(self.ended_at),
            "outcome": self.outcome.value,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "metadata": dict(self.metadata),
        }


_current_operation: contextvars.ContextVar[OperationContext | None] = contextvars.ContextVar(
    "operation_context"
)


def current_operation() -> OperationContext | None:
    """The innermost open operation in this flow, if any."""
    return _current_operation.get(None)


class OperationTracker:
    """Opens operations under the ambient grid context.

    Args:
        carrier: Carrier holding the ambient grid context
        clock: Timestamp source
        id_generator: Mints operation (leaf) ids
        max_depth: Causation depth limit (defaults to ``GRID_MAX_CAUSATION_DEPTH``)
    """

    def __init__(
        self,
        carrier: ContextCarrier | None = None,
        *,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        max_depth: int | None = None,
    ):
        self.carrier = carrier or grid_carrier
        self.clock = clock or SystemClock()
        self.id_generator = id_generator or UlidGenerator()
        self.max_depth = max_depth if max_depth is not None else get_settings().max_causation_depth

    @contextmanager
    def begin(
        self, operation_name: str, *, metadata: Mapping[str, Any] | None = None
    ) -> Iterator[OperationContext]:
        """Open *operation_name* for the duration of the ``with`` block.

        Raises:
            ContextNotInitializedError: No grid context is ambient
            ChainTooDeepError: Nesting would exceed ``max_depth``
        """
        parent = self.carrier.current()
        child = parent.derive_child(self.id_generator, max_depth=self.max_depth, clock=self.clock)
        operation = OperationContext(
            operation_id=child.leaf_id or "",
            operation_name=operation_name,
            parent_grid_context=parent,
            grid_context=child,
            started_at=self.clock.now(),
            metadata=dict(metadata or {}),
            _clock=self.clock,
            _started_ticks=self.clock.monotonic_ticks(),
        )

        grid_token = self.carrier.set(child)
        operation_token = _current_operation.set(operation)
        logger.debug("operation_started", operation=operation_name)
        try:
            yield operation
        except asyncio.CancelledError:
            operation.cancel()
            raise
        except Exception as exc:
            operation.fail(str(exc) or type(exc).__name__)
            raise
        else:
            operation.complete()
        finally:
            if operation.is_pending:
                operation.cancel("interrupted")
            log = logger.info if operation.outcome is Outcome.SUCCEEDED else logger.warning
            log(
                "operation_finished",
                operation=operation_name,
                outcome=operation.outcome.value,
                duration_ms=operation.duration_ms,
                error=operation.error,
            )
            _current_operation.reset(operation_token)
            self.carrier.reset(grid_token)


__all__ = ["Outcome", "OperationContext", "OperationTracker", "current_operation"]
