"""Operation and result models for the operation coordinator.

This module defines:
- OperationPriority: critical operations halt the run when they fail
- Operation: A unit of work with dependencies and an async action
- OperationResult: The settled outcome of one operation
- Errors raised for invalid graphs and recorded on failed results
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence


class OperationPriority(str, Enum):
    """Priority class of an operation.

    Attributes:
        CRITICAL: Failure aborts the remainder of the run.
        NORMAL: Failure is returned to the caller for domain fallback.
    """

    CRITICAL = "critical"
    NORMAL = "normal"


@dataclass
class Operation:
    """A unit of work submitted to the coordinator.

    Attributes:
        id: Identifier, unique within a run.
        description: Human-readable description for progress output.
        action: Zero-argument callable returning an awaitable.
        priority: Critical or normal.
        dependencies: Identifiers that must settle before this one starts.
        timeout_seconds: Optional bound on each attempt of the action.
        retries: Extra attempts after the first failure.
    """

    id: str
    description: str
    action: Callable[[], Awaitable[Any]]
    priority: OperationPriority = OperationPriority.NORMAL
    dependencies: List[str] = field(default_factory=list)
    timeout_seconds: Optional[float] = None
    retries: int = 0

    @property
    def critical(self) -> bool:
        return self.priority == OperationPriority.CRITICAL


@dataclass
class OperationResult:
    """Settled outcome of an operation.

    Attributes:
        id: Operation identifier.
        success: Whether the action completed without raising.
        result: Value returned by the action, if successful.
        error: Exception raised by the action, if it failed.
        critical: Whether the operation was critical.
        duration_seconds: Wall-clock time across all attempts.
        skipped: True if the run halted before the operation started.
    """

    id: str
    success: bool
    result: Any = None
    error: Optional[BaseException] = None
    critical: bool = False
    duration_seconds: float = 0.0
    skipped: bool = False


class OperationGraphError(ValueError):
    """Raised before execution for unknown ids, duplicates, or cycles."""

    pass


class DependencyFailedError(Exception):
    """Recorded on a critical operation whose dependency failed."""

    def __init__(self, operation_id: str, failed_dependencies: Sequence[str]):
        self.operation_id = operation_id
        self.failed_dependencies = list(failed_dependencies)
        super().__init__(
            f"Operation '{operation_id}' not started: dependencies failed: "
            f"{', '.join(self.failed_dependencies)}"
        )


class OperationTimeoutError(Exception):
    """Recorded when an attempt exceeds the operation's timeout."""

    def __init__(self, operation_id: str, timeout_seconds: float):
        self.operation_id = operation_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Operation '{operation_id}' timed out after {timeout_seconds:g}s"
        )


class OperationSkippedError(Exception):
    """Recorded on operations never started because the run halted."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(
            f"Operation '{operation_id}' skipped after a critical failure"
        )


def first_critical_failure(results: Sequence[OperationResult]) -> Optional[OperationResult]:
    """Return the first failed (not skipped) critical result, if any."""
    for result in results:
        if result.critical and not result.success and not result.skipped:
            return result
    return None
