"""Tests for NodeLifecycleManager: ordering, rollback, stop and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from gridkernel.core.errors import KernelInvariantError, RegistrationClosedError
from gridkernel.lifecycle.hooks import ActionLog, HookFailure, HookPhase
from gridkernel.lifecycle.manager import (
    VALID_TRANSITIONS,
    LifecyclePhase,
    LifecycleResult,
    NodeLifecycleManager,
    is_valid_transition,
)


class Recorder:
    """Builds hook actions that append to a shared call log."""

    def __init__(self):
        self.calls: list[str] = []

    def ok(self, label: str):
        async def action(cancellation: asyncio.Event) -> None:
            self.calls.append(label)

        return action

    def fail(self, label: str, exc: Exception | None = None):
        async def action(cancellation: asyncio.Event) -> None:
            self.calls.append(label)
            raise exc or RuntimeError(f"{label} failed")

        return action


@pytest.fixture
def rec() -> Recorder:
    return Recorder()


@pytest.fixture
def manager(clock) -> NodeLifecycleManager:
    return NodeLifecycleManager(clock=clock)


def _phases(manager: NodeLifecycleManager) -> list[LifecyclePhase]:
    return [t.target for t in manager.history]


# ── Transition table ────────────────────────────────────────────────────


class TestTransitions:
    def test_table_shape(self):
        assert VALID_TRANSITIONS[LifecyclePhase.STOPPED] == frozenset()
        assert is_valid_transition(LifecyclePhase.NOT_STARTED, LifecyclePhase.STARTING)
        assert is_valid_transition(LifecyclePhase.FAULTED, LifecyclePhase.STOPPING)
        assert not is_valid_transition(LifecyclePhase.NOT_STARTED, LifecyclePhase.RUNNING)
        assert not is_valid_transition(LifecyclePhase.STOPPED, LifecyclePhase.STARTING)

    def test_internal_violation_raises(self, manager):
        with pytest.raises(KernelInvariantError):
            manager._transition(LifecyclePhase.RUNNING)

    def test_result_ok(self):
        assert LifecycleResult(phase=LifecyclePhase.RUNNING).ok
        assert not LifecycleResult(phase=LifecyclePhase.RUNNING, accepted=False).ok
        assert not LifecycleResult(phase=LifecyclePhase.FAULTED).ok


# ── Registration ────────────────────────────────────────────────────────


class TestRegistration:
    def test_sequence_assigned(self, manager, rec):
        a = manager.on_startup("a", rec.ok("a"))
        b = manager.on_shutdown("b", rec.ok("b"))
        assert (a.sequence, b.sequence) == (0, 1)
        assert b.phase is HookPhase.SHUTDOWN

    def test_empty_name_rejected(self, manager, rec):
        with pytest.raises(ValueError):
            manager.on_startup("", rec.ok("x"))

    @pytest.mark.asyncio
    async def test_closed_after_start(self, manager, rec):
        await manager.start()
        with pytest.raises(RegistrationClosedError):
            manager.on_startup("late", rec.ok("late"))


# ── Startup ─────────────────────────────────────────────────────────────


class TestStart:
    @pytest.mark.asyncio
    async def test_runs_in_order_then_running(self, manager, rec):
        manager.on_startup("third", rec.ok("third"), order=20)
        manager.on_startup("first", rec.ok("first"), order=-5)
        manager.on_startup("second-a", rec.ok("second-a"), order=0)
        manager.on_startup("second-b", rec.ok("second-b"), order=0)

        result = await manager.start()

        assert result.ok
        assert result.phase is LifecyclePhase.RUNNING
        assert rec.calls == ["first", "second-a", "second-b", "third"]
        assert _phases(manager) == [LifecyclePhase.STARTING, LifecyclePhase.RUNNING]
        assert [h.name for h in manager.action_log.entries] == ["first", "second-a", "second-b", "third"]

    @pytest.mark.asyncio
    async def test_sync_hooks_supported(self, manager):
        called: list[str] = []
        manager.on_startup("sync", lambda cancellation: called.append("sync"))
        assert (await manager.start()).ok
        assert called == ["sync"]

    @pytest.mark.asyncio
    async def test_hooks_run_sequentially(self, manager):
        active = 0
        peak = 0

        def hook(i: int):
            async def action(cancellation):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.001)
                active -= 1

            return action

        for i in range(5):
            manager.on_startup(f"h{i}", hook(i))
        await manager.start()
        assert peak == 1

    @pytest.mark.asyncio
    async def test_failure_rolls_back_in_reverse(self, manager, rec):
        manager.register_pair("A", rec.ok("start A"), rec.ok("stop A"), order=1)
        manager.register_pair("B", rec.ok("start B"), rec.ok("stop B"), order=2)
        manager.register_pair("C", rec.fail("start C"), rec.ok("stop C"), order=3)
        manager.register_pair("D", rec.ok("start D"), rec.ok("stop D"), order=4)

        result = await manager.start()

        assert result.phase is LifecyclePhase.FAULTED
        assert not result.ok
        assert rec.calls == ["start A", "start B", "start C", "stop B", "stop A"]
        assert [f.hook_name for f in result.failures] == ["C"]
        failure = result.failures[0]
        assert failure.phase is HookPhase.STARTUP
        assert failure.exception_type == "RuntimeError"
        assert failure.error == "start C failed"
        assert not failure.rollback
        assert _phases(manager) == [LifecyclePhase.STARTING, LifecyclePhase.FAULTED]

    @pytest.mark.asyncio
    async def test_rollback_failures_recorded_and_best_effort(self, manager, rec):
        manager.register_pair("A", rec.ok("start A"), rec.ok("stop A"), order=1)
        manager.register_pair("B", rec.ok("start B"), rec.fail("stop B"), order=2)
        manager.on_startup("C", rec.fail("start C"), order=3)

        result = await manager.start()

        assert rec.calls == ["start A", "start B", "start C", "stop B", "stop A"]
        assert [(f.hook_name, f.rollback) for f in result.failures] == [("C", False), ("B", True)]
        assert manager.failures == list(result.failures)

    @pytest.mark.asyncio
    async def test_first_hook_failure_has_nothing_to_roll_back(self, manager, rec):
        manager.register_pair("A", rec.fail("start A"), rec.ok("stop A"))
        result = await manager.start()
        assert rec.calls == ["start A"]
        assert result.phase is LifecyclePhase.FAULTED

    @pytest.mark.asyncio
    async def test_start_twice_is_rejected(self, manager):
        await manager.start()
        second = await manager.start()
        assert second.accepted is False
        assert second.phase is LifecyclePhase.RUNNING
        assert _phases(manager) == [LifecyclePhase.STARTING, LifecyclePhase.RUNNING]

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, manager, rec):
        manager.on_startup("flaky", rec.fail("flaky"))
        await manager.start()
        again = await manager.start()
        assert not again.accepted
        assert rec.calls == ["flaky"]


# ── Shutdown ────────────────────────────────────────────────────────────


class TestStop:
    @pytest.mark.asyncio
    async def test_reverse_order_best_effort(self, manager, rec):
        manager.on_shutdown("db", rec.ok("db"), order=1)
        manager.on_shutdown("cache", rec.fail("cache"), order=2)
        manager.on_shutdown("http", rec.ok("http"), order=3)
        await manager.start()

        result = await manager.stop()

        assert rec.calls == ["http", "cache", "db"]
        assert result.phase is LifecyclePhase.STOPPED
        assert [f.hook_name for f in result.failures] == ["cache"]
        assert result.failures[0].phase is HookPhase.SHUTDOWN
        assert _phases(manager)[-2:] == [LifecyclePhase.STOPPING, LifecyclePhase.STOPPED]

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, manager, rec):
        manager.on_shutdown("db", rec.ok("db"))
        await manager.start()
        first = await manager.stop()
        second = await manager.stop()
        assert first.ok
        assert second.accepted is False
        assert second.phase is LifecyclePhase.STOPPED
        assert rec.calls == ["db"]

    @pytest.mark.asyncio
    async def test_stop_before_start_rejected(self, manager):
        result = await manager.stop()
        assert not result.accepted
        assert result.phase is LifecyclePhase.NOT_STARTED
        assert manager.history == []

    @pytest.mark.asyncio
    async def test_stop_after_fault_skips_rolled_back_and_never_started(self, manager, rec):
        manager.register_pair("A", rec.ok("start A"), rec.ok("stop A"), order=1)
        manager.register_pair("B", rec.fail("start B"), rec.ok("stop B"), order=2)
        manager.register_pair("C", rec.ok("start C"), rec.ok("stop C"), order=3)
        manager.on_shutdown("flush-logs", rec.ok("flush-logs"), order=99)

        await manager.start()
        rec.calls.clear()
        result = await manager.stop()

        assert rec.calls == ["flush-logs"]
        assert result.phase is LifecyclePhase.STOPPED


# ── Cancellation ────────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_start_stops_further_hooks(self, manager, rec):
        cancellation = asyncio.Event()

        async def trip(cancel: asyncio.Event) -> None:
            rec.calls.append("start A")
            cancel.set()

        manager.register_pair("A", trip, rec.ok("stop A"), order=1)
        manager.register_pair("B", rec.ok("start B"), rec.ok("stop B"), order=2)

        result = await manager.start(cancellation)

        assert result.cancelled
        assert result.phase is LifecyclePhase.FAULTED
        assert rec.calls == ["start A"]

        cleanup = await manager.stop()
        assert cleanup.phase is LifecyclePhase.STOPPED
        assert rec.calls == ["start A", "stop A"]

    @pytest.mark.asyncio
    async def test_cancel_during_stop_then_resume(self, manager, rec):
        cancellation = asyncio.Event()

        async def trip(cancel: asyncio.Event) -> None:
            rec.calls.append("stop second")
            cancel.set()

        manager.on_shutdown("first", rec.ok("stop first"), order=1)
        manager.on_shutdown("second", trip, order=2)
        await manager.start()

        interrupted = await manager.stop(cancellation)
        assert interrupted.cancelled
        assert interrupted.phase is LifecyclePhase.FAULTED

        resumed = await manager.stop()
        assert resumed.phase is LifecyclePhase.STOPPED
        assert rec.calls == ["stop second", "stop first"]

    @pytest.mark.asyncio
    async def test_task_cancellation_in_hook_faults_and_propagates(self, manager):
        entered = asyncio.Event()

        async def blocking(cancellation):
            entered.set()
            await asyncio.sleep(10)

        manager.on_startup("blocking", blocking)
        task = asyncio.create_task(manager.start())
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert manager.phase is LifecyclePhase.FAULTED
        assert manager.failures[0].exception_type == "CancelledError"


# ── Concurrency ─────────────────────────────────────────────────────────


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_start_runs_hooks_once(self, manager, rec):
        async def slow(cancellation):
            rec.calls.append("start")
            await asyncio.sleep(0.01)

        manager.on_startup("slow", slow)
        first, second = await asyncio.gather(manager.start(), manager.start())

        assert rec.calls == ["start"]
        assert sorted([first.accepted, second.accepted]) == [False, True]
        assert manager.phase is LifecyclePhase.RUNNING

    @pytest.mark.asyncio
    async def test_stop_waits_for_start(self, manager, rec):
        async def slow(cancellation):
            await asyncio.sleep(0.01)
            rec.calls.append("started")

        manager.on_startup("slow", slow)
        manager.on_shutdown("down", rec.ok("stopped"))
        start_task = asyncio.create_task(manager.start())
        await asyncio.sleep(0)
        stop_result = await manager.stop()
        await start_task

        assert rec.calls == ["started", "stopped"]
        assert stop_result.phase is LifecyclePhase.STOPPED


# ── Hooks module ────────────────────────────────────────────────────────


class TestHookTypes:
    def test_action_log(self, manager, rec):
        hook = manager.on_startup("a", rec.ok("a"))
        log = ActionLog()
        log.record(hook)
        assert len(log) == 1
        assert "a" in log
        assert list(log.reversed()) == [hook]

    def test_failure_from_exception_without_message(self, manager, rec):
        hook = manager.on_startup("a", rec.ok("a"))
        failure = HookFailure.from_exception(hook, TimeoutError())
        assert failure.error == "TimeoutError"
        assert failure.exception_type == "TimeoutError"
