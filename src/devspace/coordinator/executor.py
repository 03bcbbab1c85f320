"""Dependency-aware concurrent operation coordinator.

The coordinator runs registered operations as asyncio tasks:

- Each requested id pulls in its transitive dependencies; graph errors
  (unknown ids, cycles) are raised before anything runs
- An operation starts only after every dependency has settled
- Independent operations run concurrently, with no ordering guarantee
- A raised error becomes a failed OperationResult; siblings continue
- A critical failure halts the run: operations not yet started are
  recorded as skipped, in-flight operations settle naturally
- Operations settled earlier in the run are not re-run

Every phase transition is published to the injected EventEmitter.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from src.devspace.coordinator.models import (
    DependencyFailedError,
    Operation,
    OperationGraphError,
    OperationResult,
    OperationSkippedError,
    OperationTimeoutError,
)
from src.devspace.events.emitter import EventEmitter, NullEventEmitter
from src.devspace.events.models import OperationPhase, WorkspaceEvent


logger = logging.getLogger(__name__)

# Delay before retry n is RETRY_BASE_DELAY_SECONDS * 2**n
RETRY_BASE_DELAY_SECONDS = 0.1


class OperationCoordinator:
    """Executes operations respecting dependencies and priorities.

    One instance may be reused across orchestration runs; clear() resets
    all registered operations and results.

    Example:
        >>> coordinator = OperationCoordinator()
        >>> coordinator.add_operation(Operation("a", "first", action_a))
        >>> coordinator.add_operation(
        ...     Operation("b", "second", action_b, dependencies=["a"])
        ... )
        >>> results = await coordinator.execute_in_parallel(["b"])
    """

    def __init__(
        self,
        emitter: Optional[EventEmitter] = None,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
    ):
        self._emitter = emitter or NullEventEmitter()
        self._retry_base_delay = retry_base_delay
        self._operations: Dict[str, Operation] = {}
        self._results: Dict[str, OperationResult] = {}
        self._tasks: Dict[str, "asyncio.Future[OperationResult]"] = {}
        self._halted = False
        self._label = ""

    @property
    def label(self) -> str:
        """Label attached to emitted events (usually the workspace name)."""
        return self._label

    @property
    def halted(self) -> bool:
        """True once a critical operation has failed in this run."""
        return self._halted

    def add_operation(self, operation: Operation) -> None:
        """Register an operation for this run.

        Raises:
            OperationGraphError: If the id is already registered.
        """
        if operation.id in self._operations:
            raise OperationGraphError(f"Duplicate operation id: '{operation.id}'")
        self._operations[operation.id] = operation

    async def execute_in_parallel(self, operation_ids: Sequence[str]) -> List[OperationResult]:
        """Execute the requested operations and their dependencies.

        Args:
            operation_ids: Operations whose results the caller wants.

        Returns:
            One result per distinct requested id, in request order.

        Raises:
            OperationGraphError: If an id or dependency is unknown, or the
                dependency graph has a cycle.
        """
        order = self._resolve_order(operation_ids)

        for op_id in order:
            if op_id not in self._tasks:
                self._tasks[op_id] = asyncio.ensure_future(
                    self._run(self._operations[op_id])
                )

        await asyncio.gather(*(self._tasks[op_id] for op_id in order))

        requested = list(dict.fromkeys(operation_ids))
        return [self._results[op_id] for op_id in requested]

    def clear(self, label: str = "") -> None:
        """Reset all operations and results for a new run.

        Args:
            label: Label attached to events emitted during the next run.
        """
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._operations.clear()
        self._results.clear()
        self._tasks.clear()
        self._halted = False
        self._label = label

    def get_result(self, operation_id: str) -> Optional[OperationResult]:
        return self._results.get(operation_id)

    def failures(self) -> List[OperationResult]:
        """Return all failed results, skipped ones included."""
        return [r for r in self._results.values() if not r.success]

    def all_successful(self) -> bool:
        return all(r.success for r in self._results.values())

    def total_duration(self) -> float:
        """Sum of action durations of all settled operations."""
        return sum(r.duration_seconds for r in self._results.values())

    # -------------------------------------------------------------------------
    # Graph resolution
    # -------------------------------------------------------------------------

    def _resolve_order(self, operation_ids: Sequence[str]) -> List[str]:
        """Topologically order the transitive closure of operation_ids."""
        order: List[str] = []
        visiting: set = set()
        done: set = set()

        def visit(op_id: str, path: List[str]) -> None:
            if op_id in done:
                return
            if op_id not in self._operations:
                if path:
                    raise OperationGraphError(
                        f"Operation '{path[-1]}' depends on unknown operation '{op_id}'"
                    )
                raise OperationGraphError(f"Unknown operation: '{op_id}'")
            if op_id in visiting:
                cycle = path[path.index(op_id):] + [op_id]
                raise OperationGraphError(
                    f"Dependency cycle detected: {' -> '.join(cycle)}"
                )
            visiting.add(op_id)
            for dep in self._operations[op_id].dependencies:
                visit(dep, path + [op_id])
            visiting.discard(op_id)
            done.add(op_id)
            order.append(op_id)

        for op_id in operation_ids:
            visit(op_id, [])

        return order

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _run(self, operation: Operation) -> OperationResult:
        for dep in operation.dependencies:
            await self._tasks[dep]

        if self._halted:
            result = OperationResult(
                id=operation.id,
                success=False,
                error=OperationSkippedError(operation.id),
                critical=operation.critical,
                skipped=True,
            )
            return await self._settle(operation, result, OperationPhase.SKIPPED)

        failed_deps = [
            dep for dep in operation.dependencies if not self._results[dep].success
        ]
        if failed_deps and operation.critical:
            result = OperationResult(
                id=operation.id,
                success=False,
                error=DependencyFailedError(operation.id, failed_deps),
                critical=True,
            )
            return await self._settle(operation, result, OperationPhase.FAILED)

        await self._emit(operation.id, OperationPhase.STARTED, description=operation.description)

        start = time.monotonic()
        attempt = 0
        while True:
            try:
                value = await self._attempt(operation)
            except OperationTimeoutError as e:
                error: BaseException = e
                phase = OperationPhase.TIMEOUT
            except Exception as e:
                error = e
                phase = OperationPhase.FAILED
            else:
                result = OperationResult(
                    id=operation.id,
                    success=True,
                    result=value,
                    critical=operation.critical,
                    duration_seconds=time.monotonic() - start,
                )
                return await self._settle(operation, result, OperationPhase.COMPLETED)

            if attempt >= operation.retries:
                break
            delay = self._retry_base_delay * (2 ** attempt)
            attempt += 1
            logger.debug(
                "Retrying operation %s (%d/%d): %s",
                operation.id,
                attempt,
                operation.retries,
                error,
                extra={"operation_id": operation.id, "retry_delay": delay},
            )
            await asyncio.sleep(delay)

        result = OperationResult(
            id=operation.id,
            success=False,
            error=error,
            critical=operation.critical,
            duration_seconds=time.monotonic() - start,
        )
        return await self._settle(operation, result, phase)

    async def _attempt(self, operation: Operation) -> Any:
        if operation.timeout_seconds is None:
            return await operation.action()
        try:
            return await asyncio.wait_for(operation.action(), operation.timeout_seconds)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(operation.id, operation.timeout_seconds)

    async def _settle(
        self,
        operation: Operation,
        result: OperationResult,
        phase: OperationPhase,
    ) -> OperationResult:
        self._results[operation.id] = result
        if not result.success and not result.skipped and operation.critical:
            self._halted = True

        details: Dict[str, Any] = {"critical": operation.critical}
        if phase != OperationPhase.SKIPPED:
            details["duration_seconds"] = round(result.duration_seconds, 4)
        if result.error is not None and phase != OperationPhase.SKIPPED:
            details["error"] = str(result.error)
        if phase == OperationPhase.TIMEOUT:
            details["timeout_seconds"] = operation.timeout_seconds

        await self._emit(operation.id, phase, **details)
        return result

    async def _emit(self, operation_id: str, phase: OperationPhase, **details: Any) -> None:
        try:
            await self._emitter.emit(
                WorkspaceEvent(
                    operation_id=operation_id,
                    phase=phase,
                    workspace=self._label,
                    details=details,
                )
            )
        except Exception as e:
            logger.warning(
                "Failed to emit %s event for %s: %s",
                phase.value,
                operation_id,
                e,
                extra={"operation_id": operation_id},
            )
