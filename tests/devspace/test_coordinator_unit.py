"""Unit tests for the OperationCoordinator.

Covers dependency ordering, concurrency of independent operations,
failure isolation, critical-failure halting, timeouts, retries, graph
validation and the published event sequence.
"""

import asyncio
from typing import List

import pytest

from src.devspace.coordinator import (
    DependencyFailedError,
    Operation,
    OperationCoordinator,
    OperationGraphError,
    OperationPriority,
    OperationSkippedError,
    OperationTimeoutError,
    first_critical_failure,
)
from src.devspace.events.emitter import EventEmitter
from src.devspace.events.models import OperationPhase, WorkspaceEvent


def run_async(coro):
    return asyncio.run(coro)


class RecordingEmitter(EventEmitter):
    def __init__(self):
        self.events: List[WorkspaceEvent] = []

    async def emit(self, event: WorkspaceEvent) -> None:
        self.events.append(event)

    def phases(self, operation_id: str) -> List[OperationPhase]:
        return [e.phase for e in self.events if e.operation_id == operation_id]


def _returning(value, log=None, name=None, delay=0.0):
    async def action():
        if log is not None:
            log.append(f"start:{name}")
        if delay:
            await asyncio.sleep(delay)
        if log is not None:
            log.append(f"end:{name}")
        return value

    return action


def _failing(error, delay=0.0):
    async def action():
        if delay:
            await asyncio.sleep(delay)
        raise error

    return action


class TestDependencies:

    def test_dependency_completes_before_dependent_starts(self):
        log: List[str] = []

        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("a", "first", _returning(1, log, "a", 0.01)))
            coordinator.add_operation(
                Operation("b", "second", _returning(2, log, "b"), dependencies=["a"])
            )
            return await coordinator.execute_in_parallel(["b"])

        (result,) = run_async(scenario())
        assert result.success and result.result == 2
        assert log.index("end:a") < log.index("start:b")

    def test_independent_operations_run_concurrently(self):
        async def scenario():
            ready = asyncio.Event()

            async def waiter():
                await asyncio.wait_for(ready.wait(), timeout=2.0)
                return "waited"

            async def setter():
                ready.set()
                return "set"

            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("waiter", "waits", waiter))
            coordinator.add_operation(Operation("setter", "sets", setter))
            return await coordinator.execute_in_parallel(["waiter", "setter"])

        waiter, setter = run_async(scenario())
        assert waiter.success and setter.success

    def test_results_follow_request_order_without_duplicates(self):
        async def scenario():
            coordinator = OperationCoordinator()
            for op_id in ("x", "y", "z"):
                coordinator.add_operation(Operation(op_id, op_id, _returning(op_id)))
            return await coordinator.execute_in_parallel(["z", "x", "z", "y"])

        assert [r.id for r in run_async(scenario())] == ["z", "x", "y"]

    def test_settled_operations_are_not_rerun(self):
        calls = []

        async def counted():
            calls.append(1)
            return len(calls)

        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("a", "counted", counted))
            coordinator.add_operation(
                Operation("b", "after", _returning("b"), dependencies=["a"])
            )
            await coordinator.execute_in_parallel(["a"])
            await coordinator.execute_in_parallel(["b"])
            await coordinator.execute_in_parallel(["a", "b"])
            return coordinator.get_result("a")

        result = run_async(scenario())
        assert calls == [1]
        assert result.result == 1


class TestFailures:

    def test_failure_does_not_affect_siblings(self):
        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("bad", "fails", _failing(RuntimeError("boom"))))
            coordinator.add_operation(Operation("good", "works", _returning("ok")))
            return await coordinator.execute_in_parallel(["bad", "good"])

        bad, good = run_async(scenario())
        assert not bad.success
        assert isinstance(bad.error, RuntimeError)
        assert good.success and good.result == "ok"

    def test_normal_operation_runs_after_normal_dependency_failure(self):
        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("bad", "fails", _failing(RuntimeError("boom"))))
            coordinator.add_operation(
                Operation("after", "still runs", _returning("ran"), dependencies=["bad"])
            )
            return await coordinator.execute_in_parallel(["after"])

        (after,) = run_async(scenario())
        assert after.success and after.result == "ran"

    def test_critical_operation_with_failed_dependency_fails(self):
        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("bad", "fails", _failing(RuntimeError("boom"))))
            coordinator.add_operation(
                Operation(
                    "gate",
                    "needs bad",
                    _returning("never"),
                    priority=OperationPriority.CRITICAL,
                    dependencies=["bad"],
                )
            )
            results = await coordinator.execute_in_parallel(["gate"])
            return results, coordinator.halted

        (gate,), halted = run_async(scenario())
        assert not gate.success
        assert isinstance(gate.error, DependencyFailedError)
        assert gate.error.failed_dependencies == ["bad"]
        assert halted

    def test_critical_failure_skips_pending_and_lets_in_flight_settle(self):
        emitter = RecordingEmitter()

        async def scenario():
            coordinator = OperationCoordinator(emitter=emitter)
            coordinator.add_operation(
                Operation(
                    "critical",
                    "fails fast",
                    _failing(RuntimeError("disk full"), delay=0.01),
                    priority=OperationPriority.CRITICAL,
                )
            )
            coordinator.add_operation(
                Operation("dependent", "after critical", _returning(1), dependencies=["critical"])
            )
            coordinator.add_operation(Operation("slow", "in flight", _returning(2, delay=0.05)))
            coordinator.add_operation(
                Operation("after_slow", "after slow", _returning(3), dependencies=["slow"])
            )
            results = await coordinator.execute_in_parallel(
                ["critical", "dependent", "slow", "after_slow"]
            )
            return results, coordinator

        (critical, dependent, slow, after_slow), coordinator = run_async(scenario())

        assert not critical.success and not critical.skipped
        assert dependent.skipped and isinstance(dependent.error, OperationSkippedError)
        assert slow.success
        assert after_slow.skipped
        assert first_critical_failure([dependent, slow, critical]) is critical
        assert coordinator.halted
        assert emitter.phases("dependent") == [OperationPhase.SKIPPED]
        assert emitter.phases("critical") == [OperationPhase.STARTED, OperationPhase.FAILED]

    def test_clear_resets_halted_state(self):
        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(
                Operation(
                    "critical",
                    "fails",
                    _failing(RuntimeError("x")),
                    priority=OperationPriority.CRITICAL,
                )
            )
            await coordinator.execute_in_parallel(["critical"])
            assert coordinator.halted

            coordinator.clear(label="next")
            coordinator.add_operation(Operation("critical", "works now", _returning("ok")))
            results = await coordinator.execute_in_parallel(["critical"])
            return results, coordinator

        (result,), coordinator = run_async(scenario())
        assert result.success
        assert not coordinator.halted
        assert coordinator.label == "next"


class TestTimeoutsAndRetries:

    def test_timeout_fails_operation(self):
        emitter = RecordingEmitter()

        async def scenario():
            coordinator = OperationCoordinator(emitter=emitter)
            coordinator.add_operation(
                Operation("slow", "sleeps", _returning(1, delay=1.0), timeout_seconds=0.05)
            )
            return await coordinator.execute_in_parallel(["slow"])

        (result,) = run_async(scenario())
        assert not result.success
        assert isinstance(result.error, OperationTimeoutError)
        assert emitter.phases("slow") == [OperationPhase.STARTED, OperationPhase.TIMEOUT]
        assert emitter.events[-1].details["timeout_seconds"] == 0.05

    def test_retries_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("transient")
            return "ok"

        async def scenario():
            coordinator = OperationCoordinator(retry_base_delay=0)
            coordinator.add_operation(Operation("flaky", "flaky", flaky, retries=2))
            return await coordinator.execute_in_parallel(["flaky"])

        (result,) = run_async(scenario())
        assert result.success and result.result == "ok"
        assert len(attempts) == 3

    def test_retries_exhausted(self):
        attempts = []

        async def always_fails():
            attempts.append(1)
            raise ConnectionError("down")

        async def scenario():
            coordinator = OperationCoordinator(retry_base_delay=0)
            coordinator.add_operation(Operation("down", "down", always_fails, retries=1))
            return await coordinator.execute_in_parallel(["down"])

        (result,) = run_async(scenario())
        assert not result.success
        assert len(attempts) == 2


class TestGraphValidation:

    def test_duplicate_id(self):
        coordinator = OperationCoordinator()
        coordinator.add_operation(Operation("a", "a", _returning(1)))
        with pytest.raises(OperationGraphError):
            coordinator.add_operation(Operation("a", "again", _returning(2)))

    def test_unknown_operation(self):
        coordinator = OperationCoordinator()
        with pytest.raises(OperationGraphError, match="Unknown operation"):
            run_async(coordinator.execute_in_parallel(["missing"]))

    def test_unknown_dependency(self):
        coordinator = OperationCoordinator()
        coordinator.add_operation(Operation("a", "a", _returning(1), dependencies=["ghost"]))
        with pytest.raises(OperationGraphError, match="ghost"):
            run_async(coordinator.execute_in_parallel(["a"]))

    def test_cycle_is_rejected_before_anything_runs(self):
        calls = []

        async def recorded():
            calls.append(1)

        coordinator = OperationCoordinator()
        coordinator.add_operation(Operation("free", "free", recorded))
        coordinator.add_operation(Operation("a", "a", recorded, dependencies=["b"]))
        coordinator.add_operation(Operation("b", "b", recorded, dependencies=["a"]))
        with pytest.raises(OperationGraphError, match="cycle"):
            run_async(coordinator.execute_in_parallel(["free", "a"]))
        assert calls == []


class TestQueries:

    def test_summary_queries(self):
        async def scenario():
            coordinator = OperationCoordinator()
            coordinator.add_operation(Operation("a", "a", _returning(1, delay=0.01)))
            coordinator.add_operation(Operation("b", "b", _failing(ValueError("bad"))))
            await coordinator.execute_in_parallel(["a", "b"])
            return coordinator

        coordinator = run_async(scenario())
        assert [r.id for r in coordinator.failures()] == ["b"]
        assert not coordinator.all_successful()
        assert coordinator.total_duration() > 0
        assert coordinator.get_result("missing") is None

    def test_event_sequence_and_label(self):
        emitter = RecordingEmitter()

        async def scenario():
            coordinator = OperationCoordinator(emitter=emitter)
            coordinator.clear(label="feature_x")
            coordinator.add_operation(Operation("a", "Creating a", _returning(1)))
            await coordinator.execute_in_parallel(["a"])

        run_async(scenario())
        started, completed = emitter.events
        assert started.phase == OperationPhase.STARTED
        assert started.details["description"] == "Creating a"
        assert completed.phase == OperationPhase.COMPLETED
        assert completed.details["critical"] is False
        assert "duration_seconds" in completed.details
        assert {e.workspace for e in emitter.events} == {"feature_x"}

    def test_emitter_failure_does_not_fail_operation(self):
        class BrokenEmitter(EventEmitter):
            async def emit(self, event):
                raise RuntimeError("sink down")

        async def scenario():
            coordinator = OperationCoordinator(emitter=BrokenEmitter())
            coordinator.add_operation(Operation("a", "a", _returning(1)))
            return await coordinator.execute_in_parallel(["a"])

        (result,) = run_async(scenario())
        assert result.success
