"""
Ambient grid-context propagation using contextvars.

The carrier associates the *currently executing logical flow* with a
:class:`~gridkernel.context.grid.GridContext` snapshot without passing it
through every call.

Design choice: contextvars
- asyncio-compatible: every task runs in a copy of the context that was
  current when it was created, so a fork sees the value at fork time
- A ``set`` inside a child task never leaks into siblings or the parent
- Values survive ``await`` suspension points unchanged
- Thread pools do not copy contexts on their own; :meth:`ContextCarrier.bind`
  captures a snapshot explicitly

Usage:
    from gridkernel.context import grid_carrier

    with grid_carrier.scope(ctx):
        await handle(request)          # grid_carrier.current() is ctx

    task = grid_carrier.spawn(worker())  # worker sees ctx at spawn time
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
from collections.abc import Awaitable, Callable, Coroutine, Iterator
from contextlib import contextmanager
from typing import Any, ParamSpec, TypeVar

from gridkernel.context.grid import GridContext

T = TypeVar("T")
P = ParamSpec("P")


class ContextCarrier:
    """Flow-local storage for the ambient :class:`GridContext`."""

    def __init__(self, name: str = "grid_context"):
        self._var: contextvars.ContextVar[GridContext] = contextvars.ContextVar(name)

    def current(self) -> GridContext:
        """Ambient context, or :meth:`GridContext.empty` if none was set."""
        return self._var.get(GridContext.empty())

    def set(self, context: GridContext) -> contextvars.Token[GridContext]:
        """Make *context* ambient for this flow and flows forked after this call."""
        return self._var.set(context)

    def reset(self, token: contextvars.Token[GridContext]) -> None:
        """Restore the value that was ambient before the matching :meth:`set`."""
        self._var.reset(token)

    @contextmanager
    def scope(self, context: GridContext) -> Iterator[GridContext]:
        """Scoped activation, restored on return, error and cancellation."""
        token = self._var.set(context)
        try:
            yield context
        finally:
            self._var.reset(token)

    def run_in_scope(
        self, context: GridContext, body: Callable[P, T], *args: P.args, **kwargs: P.kwargs
    ) -> T:
        with self.scope(context):
            return body(*args, **kwargs)

    async def run_in_scope_async(
        self,
        context: GridContext,
        body: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        with self.scope(context):
            return await body(*args, **kwargs)

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
        """Fork *coro* into a task that starts from a snapshot of the current context."""
        return asyncio.get_running_loop().create_task(
            coro, name=name, context=contextvars.copy_context()
        )

    def bind(self, fn: Callable[P, T]) -> Callable[P, T]:
        """Wrap *fn* to run in a snapshot of the caller's context.

        Each invocation gets its own copy of the snapshot, so ``set`` calls
        made by one invocation are invisible to the next.
        """
        snapshot = contextvars.copy_context()

        @functools.wraps(fn)
        def _bound(*args: P.args, **kwargs: P.kwargs) -> T:
            return snapshot.copy().run(fn, *args, **kwargs)

        return _bound


grid_carrier = ContextCarrier()
"""Process-wide default carrier."""


__all__ = ["ContextCarrier", "grid_carrier"]
