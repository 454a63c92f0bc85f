"""Node host: lifecycle supervision plus liveness/readiness probes.

``NodeLifecycleHost`` glues a :class:`NodeLifecycleManager`, a
:class:`CompositeHealthCheck` and the process :class:`NodeContext`
together. Probes never raise; they always produce a structured result.

``create_health_router`` exposes the probes over FastAPI::

    GET {prefix}        full aggregate   (503 when unhealthy)
    GET {prefix}/ready  readiness        (503 unless every required check is healthy)
    GET {prefix}/live   liveness         (503 unless running)
"""

from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field

from gridkernel.context.node import NodeContext, peek_node_context
from gridkernel.core.health import (
    AggregateHealth,
    CompositeHealthCheck,
    HealthCheckResult,
    HealthStatus,
)
from gridkernel.core.logging import get_logger
from gridkernel.core.protocols import Clock
from gridkernel.core.timestamps import SystemClock
from gridkernel.lifecycle.manager import LifecyclePhase, LifecycleResult, NodeLifecycleManager

logger = get_logger(__name__)


class NodeLifecycleHost:
    """Owns a node's lifecycle and answers its health probes.

    Args:
        manager: Lifecycle state machine (a fresh one by default)
        health: Readiness checks (an empty composite by default)
        node: Node identity; falls back to the process node context
        clock: Timestamp source for probe results
    """

    def __init__(
        self,
        manager: NodeLifecycleManager | None = None,
        health: CompositeHealthCheck | None = None,
        node: NodeContext | None = None,
        *,
        clock: Clock | None = None,
    ):
        self.clock = clock or SystemClock()
        self.manager = manager or NodeLifecycleManager(clock=self.clock)
        self.health = health or CompositeHealthCheck(clock=self.clock)
        self._node = node

    @property
    def node(self) -> NodeContext | None:
        return self._node or peek_node_context()

    @property
    def node_id(self) -> str | None:
        node = self.node
        return node.node_id if node else None

    def current_phase(self) -> LifecyclePhase:
        return self.manager.phase

    def liveness(self) -> HealthCheckResult:
        """HEALTHY only while RUNNING."""
        phase = self.current_phase()
        return HealthCheckResult(
            source="liveness",
            status=HealthStatus.HEALTHY if phase is LifecyclePhase.RUNNING else HealthStatus.UNHEALTHY,
            detail=f"phase={phase.value}",
            observed_at=self.clock.now(),
        )

    def _not_running(self, phase: LifecyclePhase, results: list[HealthCheckResult]) -> AggregateHealth:
        gate = HealthCheckResult(
            source="lifecycle",
            status=HealthStatus.UNHEALTHY,
            detail=f"node is {phase.value}, not running",
            observed_at=self.clock.now(),
        )
        return AggregateHealth(
            status=HealthStatus.UNHEALTHY,
            results=[gate, *results],
            observed_at=self.clock.now(),
        )

    async def readiness(self, cancellation: asyncio.Event | None = None) -> AggregateHealth:
        """Run the readiness checks; always UNHEALTHY unless RUNNING."""
        phase = self.current_phase()
        if phase is not LifecyclePhase.RUNNING:
            return self._not_running(phase, [])

        try:
            report = await self.health.check_all(cancellation)
        except Exception as exc:  # noqa: BLE001
            logger.error("readiness_check_failed", error=str(exc), node_id=self.node_id)
            return AggregateHealth(
                status=HealthStatus.UNHEALTHY,
                results=[
                    HealthCheckResult(
                        source=self.health.name,
                        status=HealthStatus.UNHEALTHY,
                        detail=f"{type(exc).__name__}: {exc}"[:200],
                        observed_at=self.clock.now(),
                    )
                ],
                observed_at=self.clock.now(),
            )

        phase = self.current_phase()
        if phase is not LifecyclePhase.RUNNING:
            return self._not_running(phase, report.results)
        return report

    async def start(self, cancellation: asyncio.Event | None = None) -> LifecycleResult:
        logger.info("node_starting", node_id=self.node_id)
        result = await self.manager.start(cancellation)
        if result.ok:
            logger.info("node_started", node_id=self.node_id)
        else:
            logger.error(
                "node_start_failed",
                node_id=self.node_id,
                phase=result.phase.value,
                accepted=result.accepted,
                cancelled=result.cancelled,
                failures=[failure.hook_name for failure in result.failures],
            )
        return result

    async def stop(self, cancellation: asyncio.Event | None = None) -> LifecycleResult:
        logger.info("node_stopping", node_id=self.node_id)
        result = await self.manager.stop(cancellation)
        log = logger.info if result.ok else logger.warning
        log(
            "node_stopped",
            node_id=self.node_id,
            phase=result.phase.value,
            failures=[failure.hook_name for failure in result.failures],
        )
        return result

    async def serve(self, stop_event: asyncio.Event) -> LifecycleResult:
        """Start, wait for *stop_event* while running, then stop."""
        await self.start()
        if self.current_phase() is LifecyclePhase.RUNNING:
            await stop_event.wait()
        return await self.stop()


# ── HTTP surface ─────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    """Body returned by the health endpoints."""

    status: HealthStatus
    phase: LifecyclePhase
    node_id: str | None = None
    version: str | None = None
    checks: list[HealthCheckResult] = Field(default_factory=list)


def create_health_router(host: NodeLifecycleHost, prefix: str = "/health"):
    """Create a FastAPI ``APIRouter`` serving *host*'s probes.

    Returns
    -------
    fastapi.APIRouter
    """
    from fastapi import APIRouter  # noqa: PLC0415
    from fastapi.responses import JSONResponse  # noqa: PLC0415

    router = APIRouter(tags=["health"])

    def _body(status: HealthStatus, checks: list[HealthCheckResult]) -> dict:
        node = host.node
        return HealthResponse(
            status=status,
            phase=host.current_phase(),
            node_id=node.node_id if node else None,
            version=node.version if node else None,
            checks=checks,
        ).model_dump(mode="json")

    @router.get(prefix, response_model=HealthResponse)
    async def health() -> JSONResponse:
        report = await host.readiness()
        code = 503 if report.status is HealthStatus.UNHEALTHY else 200
        return JSONResponse(content=_body(report.status, report.results), status_code=code)

    @router.get(f"{prefix}/ready", response_model=HealthResponse)
    async def readiness() -> JSONResponse:
        report = await host.readiness()
        code = 200 if report.is_ready else 503
        return JSONResponse(content=_body(report.status, report.results), status_code=code)

    @router.get(f"{prefix}/live", response_model=HealthResponse)
    async def liveness() -> JSONResponse:
        result = host.liveness()
        code = 200 if result.status is HealthStatus.HEALTHY else 503
        return JSONResponse(content=_body(result.status, [result]), status_code=code)

    return router


__all__ = ["NodeLifecycleHost", "HealthResponse", "create_health_router"]
