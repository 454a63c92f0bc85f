"""
Node lifecycle state machine.

Manifesto:
    A node either comes up completely or leaves nothing half-started behind.
    Startup hooks run one at a time in a fixed order; the moment one fails
    the hooks that already completed are undone in reverse, using their
    shutdown counterparts. Failures are values on the result, not
    exceptions, so the host always gets a phase back and decides what to do.

Architecture:
    ::

        NOT_STARTED ──start()──► STARTING ──ok──► RUNNING ──stop()──► STOPPING ──► STOPPED
                                    │                │                   │
                                    │ hook failed    │                   │ cancelled
                                    ▼                ▼                   ▼
                                 FAULTED ◄───────────┴───────────────────┘
                                    │
                                    └──stop()──► STOPPING (cleanup)

    ``start()``  sequential startup hooks, ascending ``(order, sequence)``
    ``rollback`` completed startup hooks in reverse, via same-named shutdown hooks
    ``stop()``   sequential shutdown hooks, descending ``(order, sequence)``

Tags:
    lifecycle, state-machine, rollback, grid-kernel

Doc-Types:
    api-reference, architecture
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from gridkernel.core.errors import KernelInvariantError, RegistrationClosedError
from gridkernel.core.logging import get_logger
from gridkernel.core.protocols import Clock
from gridkernel.core.timestamps import SystemClock
from gridkernel.lifecycle.hooks import (
    ActionLog,
    HookAction,
    HookFailure,
    HookPhase,
    HookRegistration,
)

logger = get_logger(__name__)


class LifecyclePhase(str, Enum):
    """Phase of a node's lifecycle."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAULTED = "faulted"


VALID_TRANSITIONS: dict[LifecyclePhase, frozenset[LifecyclePhase]] = {
    LifecyclePhase.NOT_STARTED: frozenset({LifecyclePhase.STARTING}),
    LifecyclePhase.STARTING: frozenset({LifecyclePhase.RUNNING, LifecyclePhase.FAULTED}),
    LifecyclePhase.RUNNING: frozenset({LifecyclePhase.STOPPING, LifecyclePhase.FAULTED}),
    LifecyclePhase.STOPPING: frozenset({LifecyclePhase.STOPPED, LifecyclePhase.FAULTED}),
    LifecyclePhase.FAULTED: frozenset({LifecyclePhase.STOPPING}),
    LifecyclePhase.STOPPED: frozenset(),
}

_STOPPABLE = frozenset({LifecyclePhase.RUNNING, LifecyclePhase.FAULTED})


def is_valid_transition(current: LifecyclePhase, target: LifecyclePhase) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class PhaseTransition:
    source: LifecyclePhase
    target: LifecyclePhase
    at: datetime


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of a ``start()`` or ``stop()`` call.

    ``accepted`` is False when the call was not legal from the current
    phase; nothing ran in that case.
    """

    phase: LifecyclePhase
    failures: tuple[HookFailure, ...] = ()
    accepted: bool = True
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return (
            self.accepted
            and not self.cancelled
            and not self.failures
            and self.phase in (LifecyclePhase.RUNNING, LifecyclePhase.STOPPED)
        )


class NodeLifecycleManager:
    """Runs registered startup and shutdown hooks through the lifecycle phases.

    Example:
        >>> manager = NodeLifecycleManager()
        >>> manager.register_pair("db", open_pool, close_pool, order=10)
        >>> result = await manager.start()
        >>> result.phase
        <LifecyclePhase.RUNNING: 'running'>
    """

    def __init__(self, *, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self._phase = LifecyclePhase.NOT_STARTED
        self._hooks: list[HookRegistration] = []
        self._sequence = itertools.count()
        self._action_log = ActionLog()
        self._invoked_shutdown: set[int] = set()
        self._failures: list[HookFailure] = []
        self._history: list[PhaseTransition] = []
        self._registration_closed = False
        self._lock = asyncio.Lock()

    # ── Introspection ────────────────────────────────────────────────────

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    @property
    def history(self) -> list[PhaseTransition]:
        return list(self._history)

    @property
    def failures(self) -> list[HookFailure]:
        return list(self._failures)

    @property
    def hooks(self) -> tuple[HookRegistration, ...]:
        return tuple(self._hooks)

    @property
    def action_log(self) -> ActionLog:
        return self._action_log

    # ── Registration ─────────────────────────────────────────────────────

    def register(
        self, name: str, phase: HookPhase, action: HookAction, order: int = 0
    ) -> HookRegistration:
        """Register a hook. Only allowed before ``start()``."""
        if self._registration_closed:
            raise RegistrationClosedError(
                f"Cannot register hook '{name}' after start()",
                context={"hook": name, "phase": self._phase.value},
            )
        if not name:
            raise ValueError("Hook name cannot be empty")

        hook = HookRegistration(
            name=name,
            phase=HookPhase(phase),
            action=action,
            order=order,
            sequence=next(self._sequence),
        )
        self._hooks.append(hook)
        logger.debug("lifecycle_hook_registered", hook=name, phase=hook.phase.value, order=order)
        return hook

    def on_startup(self, name: str, action: HookAction, order: int = 0) -> HookRegistration:
        return self.register(name, HookPhase.STARTUP, action, order)

    def on_shutdown(self, name: str, action: HookAction, order: int = 0) -> HookRegistration:
        return self.register(name, HookPhase.SHUTDOWN, action, order)

    def register_pair(
        self, name: str, startup: HookAction, shutdown: HookAction, order: int = 0
    ) -> tuple[HookRegistration, HookRegistration]:
        """Register a startup hook and the shutdown hook that undoes it."""
        return (
            self.on_startup(name, startup, order),
            self.on_shutdown(name, shutdown, order),
        )

    # ── Transitions ──────────────────────────────────────────────────────

    def _transition(self, target: LifecyclePhase) -> None:
        source = self._phase
        if not is_valid_transition(source, target):
            raise KernelInvariantError(
                f"Invalid lifecycle transition: {source.value} → {target.value}",
                context={"source": source.value, "target": target.value},
            )
        self._phase = target
        self._history.append(PhaseTransition(source=source, target=target, at=self.clock.now()))
        logger.info("lifecycle_transition", source=source.value, target=target.value)

    def _reject(self, operation: str) -> LifecycleResult:
        logger.warning("lifecycle_transition_rejected", operation=operation, phase=self._phase.value)
        return LifecycleResult(phase=self._phase, accepted=False)

    def _result(self, failures: list[HookFailure], *, cancelled: bool = False) -> LifecycleResult:
        return LifecycleResult(phase=self._phase, failures=tuple(failures), cancelled=cancelled)

    # ── Hook execution ───────────────────────────────────────────────────

    def _ordered(self, phase: HookPhase, *, reverse: bool = False) -> list[HookRegistration]:
        hooks = [hook for hook in self._hooks if hook.phase is phase]
        return sorted(hooks, key=lambda hook: hook.sort_key, reverse=reverse)

    def _record_failure(
        self,
        failures: list[HookFailure],
        hook: HookRegistration,
        exc: BaseException,
        *,
        rollback: bool = False,
    ) -> None:
        failure = HookFailure.from_exception(hook, exc, rollback=rollback)
        failures.append(failure)
        self._failures.append(failure)
        logger.error(
            "lifecycle_hook_failed",
            hook=hook.name,
            phase=hook.phase.value,
            error=failure.error,
            exception_type=failure.exception_type,
            rollback=rollback,
        )

    async def _run_hook(self, hook: HookRegistration, cancellation: asyncio.Event) -> None:
        started = self.clock.monotonic_ticks()
        logger.debug("lifecycle_hook_started", hook=hook.name, phase=hook.phase.value)
        await hook.invoke(cancellation)
        logger.info(
            "lifecycle_hook_completed",
            hook=hook.name,
            phase=hook.phase.value,
            duration_ms=round((self.clock.monotonic_ticks() - started) / 1_000_000, 2),
        )

    def _pending_shutdown_hooks(self) -> Iterator[HookRegistration]:
        """Shutdown hooks still owed, descending order.

        A shutdown hook sharing its name with a startup hook only runs when
        that startup hook completed.
        """
        startup_names = {hook.name for hook in self._hooks if hook.phase is HookPhase.STARTUP}
        completed = self._action_log.names
        for hook in self._ordered(HookPhase.SHUTDOWN, reverse=True):
            if hook.sequence in self._invoked_shutdown:
                continue
            if hook.name in startup_names and hook.name not in completed:
                continue
            yield hook

    async def _rollback(self, failures: list[HookFailure], cancellation: asyncio.Event) -> None:
        counterparts: dict[str, list[HookRegistration]] = defaultdict(list)
        for hook in self._ordered(HookPhase.SHUTDOWN, reverse=True):
            counterparts[hook.name].append(hook)

        logger.warning("lifecycle_rollback_started", completed_hooks=len(self._action_log))
        for entry in self._action_log.reversed():
            for hook in counterparts.get(entry.name, []):
                if hook.sequence in self._invoked_shutdown:
                    continue
                self._invoked_shutdown.add(hook.sequence)
                try:
                    await self._run_hook(hook, cancellation)
                except Exception as exc:  # noqa: BLE001
                    self._record_failure(failures, hook, exc, rollback=True)
        logger.warning("lifecycle_rollback_finished", failures=len(failures))

    # ── Public operations ────────────────────────────────────────────────

    async def start(self, cancellation: asyncio.Event | None = None) -> LifecycleResult:
        """Run startup hooks; on the first failure roll back and fault."""
        async with self._lock:
            if self._phase is not LifecyclePhase.NOT_STARTED:
                return self._reject("start")

            cancellation = cancellation or asyncio.Event()
            self._registration_closed = True
            self._transition(LifecyclePhase.STARTING)
            failures: list[HookFailure] = []

            for hook in self._ordered(HookPhase.STARTUP):
                if cancellation.is_set():
                    logger.warning("lifecycle_cancelled", operation="start", next_hook=hook.name)
                    self._transition(LifecyclePhase.FAULTED)
                    return self._result(failures, cancelled=True)
                try:
                    await self._run_hook(hook, cancellation)
                except asyncio.CancelledError as exc:
                    self._record_failure(failures, hook, exc)
                    self._transition(LifecyclePhase.FAULTED)
                    raise
                except Exception as exc:  # noqa: BLE001
                    self._record_failure(failures, hook, exc)
                    self._transition(LifecyclePhase.FAULTED)
                    await self._rollback(failures, cancellation)
                    return self._result(failures)
                self._action_log.record(hook)

            self._transition(LifecyclePhase.RUNNING)
            return self._result(failures)

    async def stop(self, cancellation: asyncio.Event | None = None) -> LifecycleResult:
        """Run outstanding shutdown hooks, best effort. Legal from RUNNING or FAULTED."""
        async with self._lock:
            if self._phase not in _STOPPABLE:
                return self._reject("stop")

            cancellation = cancellation or asyncio.Event()
            self._transition(LifecyclePhase.STOPPING)
            failures: list[HookFailure] = []

            for hook in list(self._pending_shutdown_hooks()):
                if cancellation.is_set():
                    logger.warning("lifecycle_cancelled", operation="stop", next_hook=hook.name)
                    self._transition(LifecyclePhase.FAULTED)
                    return self._result(failures, cancelled=True)
                self._invoked_shutdown.add(hook.sequence)
                try:
                    await self._run_hook(hook, cancellation)
                except asyncio.CancelledError as exc:
                    self._record_failure(failures, hook, exc)
                    self._transition(LifecyclePhase.FAULTED)
                    raise
                except Exception as exc:  # noqa: BLE001
                    self._record_failure(failures, hook, exc)

            self._transition(LifecyclePhase.STOPPED)
            return self._result(failures)


__all__ = [
    "LifecyclePhase",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "PhaseTransition",
    "LifecycleResult",
    "NodeLifecycleManager",
]
