"""Lifecycle hook registrations, failures and the startup action log."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from enum import Enum

HookAction = Callable[[asyncio.Event], Awaitable[None] | None]


class HookPhase(str, Enum):
    STARTUP = "startup"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class HookRegistration:
    """A named startup or shutdown action.

    Hooks run in ascending ``(order, sequence)`` at startup and descending
    at shutdown. ``sequence`` is the registration index and breaks ties.
    """

    name: str
    phase: HookPhase
    action: HookAction
    order: int = 0
    sequence: int = 0

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.order, self.sequence)

    async def invoke(self, cancellation: asyncio.Event) -> None:
        result = self.action(cancellation)
        if inspect.isawaitable(result):
            await result


@dataclass(frozen=True)
class HookFailure:
    """A hook that raised. Recorded, never re-raised (except task cancellation)."""

    hook_name: str
    phase: HookPhase
    error: str
    exception_type: str
    rollback: bool = False

    @classmethod
    def from_exception(
        cls, hook: HookRegistration, exc: BaseException, *, rollback: bool = False
    ) -> HookFailure:
        return cls(
            hook_name=hook.name,
            phase=hook.phase,
            error=str(exc) or type(exc).__name__,
            exception_type=type(exc).__name__,
            rollback=rollback,
        )


class ActionLog:
    """Startup hooks that completed, in completion order.

    Rollback replays it in reverse.
    """

    def __init__(self) -> None:
        self._entries: list[HookRegistration] = []

    def record(self, hook: HookRegistration) -> None:
        self._entries.append(hook)

    @property
    def entries(self) -> tuple[HookRegistration, ...]:
        return tuple(self._entries)

    @property
    def names(self) -> set[str]:
        return {entry.name for entry in self._entries}

    def reversed(self) -> Iterator[HookRegistration]:
        return reversed(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return any(entry.name == name for entry in self._entries)


__all__ = ["HookAction", "HookPhase", "HookRegistration", "HookFailure", "ActionLog"]
