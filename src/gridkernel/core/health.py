"""Health check aggregation for grid nodes.

Provides:

- **Result models**: ``HealthCheckResult`` and ``AggregateHealth``, the
  structured envelopes returned to probes (never an exception).
- **``FunctionHealthCheck``**: adapts a plain async callable into a
  :class:`~gridkernel.core.protocols.HealthCheck`.
- **``CompositeHealthCheck``**: runs N independent checks concurrently,
  each under its own timeout, and reduces them worst-of-N.

Aggregation policy::

    any UNHEALTHY            → UNHEALTHY
    else any DEGRADED        → DEGRADED
    else (including no checks) → HEALTHY

Quick start::

    from gridkernel.core.health import CompositeHealthCheck, FunctionHealthCheck

    composite = CompositeHealthCheck(
        [
            FunctionHealthCheck("postgres", ping_postgres),
            FunctionHealthCheck("cache", ping_redis),
        ],
        timeout_s=2.0,
    )
    report = await composite.check_all()
    report.status            # HealthStatus.HEALTHY
    report.results[0].source # "postgres"
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from gridkernel.core.logging import get_logger
from gridkernel.core.protocols import Clock, HealthCheck
from gridkernel.core.reducers import reduce_by_priority
from gridkernel.core.settings import get_settings
from gridkernel.core.timestamps import SystemClock, utc_now

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health of a check or of the whole node, ordered by severity."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def worst(cls, statuses: Iterable[HealthStatus]) -> HealthStatus:
        """Worst-of-N; an empty iterable is HEALTHY."""
        return reduce_by_priority(
            statuses,
            priority=lambda status: status.severity,
            default=cls.HEALTHY,
            ceiling=_SEVERITY[cls.UNHEALTHY],
        )


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


# ── Result models ────────────────────────────────────────────────────────


class HealthCheckResult(BaseModel):
    """Result of a single health check."""

    source: str
    status: HealthStatus
    detail: str = ""
    observed_at: datetime = Field(default_factory=utc_now)
    latency_ms: float | None = None
    required: bool = True

    @property
    def effective_status(self) -> HealthStatus:
        """Status as it counts toward the aggregate.

        An optional (``required=False``) check can degrade the node but never
        make it unhealthy.
        """
        if not self.required and self.status is HealthStatus.UNHEALTHY:
            return HealthStatus.DEGRADED
        return self.status


class AggregateHealth(BaseModel):
    """Reduced status plus every individual result, for diagnostics."""

    status: HealthStatus = HealthStatus.HEALTHY
    results: list[HealthCheckResult] = Field(default_factory=list)
    observed_at: datetime = Field(default_factory=utc_now)

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    @property
    def is_ready(self) -> bool:
        """Every required check is HEALTHY; optional checks are ignored."""
        return all(r.status is HealthStatus.HEALTHY for r in self.results if r.required)


# ── Check adapters ───────────────────────────────────────────────────────


@dataclass
class FunctionHealthCheck:
    """Declarative health check around an async callable.

    Parameters
    ----------
    name : str
        Dependency name (e.g. ``"postgres"``).
    check_fn : () -> Awaitable[bool | HealthStatus | None]
        ``True``/``None`` means healthy, ``False`` unhealthy; a
        :class:`HealthStatus` is passed through. Raising means unhealthy.
    required : bool
        ``False`` for optional dependencies: a failure only degrades the node.
    """

    name: str
    check_fn: Callable[[], Awaitable[bool | HealthStatus | None]]
    required: bool = True

    async def check(self, cancellation: asyncio.Event) -> HealthStatus:
        outcome = await self.check_fn()
        if isinstance(outcome, HealthStatus):
            return outcome
        if outcome is False:
            return HealthStatus.UNHEALTHY
        return HealthStatus.HEALTHY


# ── Composite ────────────────────────────────────────────────────────────


def _check_name(check: HealthCheck) -> str:
    return getattr(check, "name", None) or type(check).__name__


class CompositeHealthCheck:
    """Runs every registered check concurrently and reduces worst-of-N.

    Args:
        checks: Checks to run
        timeout_s: Per-check timeout (defaults to ``GRID_HEALTH_CHECK_TIMEOUT_S``)
        clock: Timestamp source for results
        name: Name reported when this composite is nested in another
        required: Whether this composite is required when nested in another

    Checks may expose a ``required`` attribute (default ``True``). A failing
    optional check counts as at most DEGRADED and does not affect
    :attr:`AggregateHealth.is_ready`.
    """

    def __init__(
        self,
        checks: Iterable[HealthCheck] | None = None,
        *,
        timeout_s: float | None = None,
        clock: Clock | None = None,
        name: str = "composite",
        required: bool = True,
    ):
        self._checks: list[HealthCheck] = list(checks or [])
        self.timeout_s = timeout_s if timeout_s is not None else get_settings().health_check_timeout_s
        self.clock = clock or SystemClock()
        self.name = name
        self.required = required

    @property
    def checks(self) -> tuple[HealthCheck, ...]:
        return tuple(self._checks)

    def add(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def _result(
        self, source: str, status: HealthStatus, detail: str = "", started: int | None = None
    ) -> HealthCheckResult:
        latency = None
        if started is not None:
            latency = round((self.clock.monotonic_ticks() - started) / 1_000_000, 2)
        return HealthCheckResult(
            source=source,
            status=status,
            detail=detail,
            observed_at=self.clock.now(),
            latency_ms=latency,
        )

    async def _run_one(self, check: HealthCheck, cancellation: asyncio.Event) -> HealthCheckResult:
        result = await self._execute(check, cancellation)
        required = bool(getattr(check, "required", True))
        if result.required and not required:
            result = result.model_copy(update={"required": False})
        return result

    async def _execute(self, check: HealthCheck, cancellation: asyncio.Event) -> HealthCheckResult:
        source = _check_name(check)
        if cancellation.is_set():
            return self._result(source, HealthStatus.UNHEALTHY, "cancelled")

        started = self.clock.monotonic_ticks()
        try:
            outcome = await asyncio.wait_for(check.check(cancellation), timeout=self.timeout_s)
        except TimeoutError:
            logger.warning("health_check_timeout", check=source, timeout_s=self.timeout_s)
            return self._result(
                source, HealthStatus.UNHEALTHY, f"timed out after {self.timeout_s}s", started
            )
        except asyncio.CancelledError:
            # Only swallow a cancellation raised by the check itself.
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning("health_check_cancelled", check=source)
            return self._result(source, HealthStatus.UNHEALTHY, "cancelled", started)
        except Exception as exc:  # noqa: BLE001
            logger.warning("health_check_failed", check=source, error=str(exc))
            detail = f"{type(exc).__name__}: {exc}"[:200]
            return self._result(source, HealthStatus.UNHEALTHY, detail, started)

        if isinstance(outcome, HealthCheckResult):
            return outcome
        if isinstance(outcome, HealthStatus):
            return self._result(source, outcome, started=started)
        return self._result(
            source, HealthStatus.UNHEALTHY, f"invalid result {type(outcome).__name__}", started
        )

    async def check_all(self, cancellation: asyncio.Event | None = None) -> AggregateHealth:
        """Run all checks in parallel and aggregate."""
        cancellation = cancellation or asyncio.Event()
        results = await asyncio.gather(*(self._run_one(check, cancellation) for check in self._checks))
        return AggregateHealth(
            status=HealthStatus.worst(result.effective_status for result in results),
            results=list(results),
            observed_at=self.clock.now(),
        )

    async def check(self, cancellation: asyncio.Event) -> HealthStatus:
        """Status only, so a composite can itself be registered as a check."""
        return (await self.check_all(cancellation)).status


__all__ = [
    "HealthStatus",
    "HealthCheckResult",
    "AggregateHealth",
    "FunctionHealthCheck",
    "CompositeHealthCheck",
]
