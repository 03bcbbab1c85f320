"""Dependency-aware concurrent operation coordinator."""

from src.devspace.coordinator.executor import OperationCoordinator
from src.devspace.coordinator.models import (
    DependencyFailedError,
    Operation,
    OperationGraphError,
    OperationPriority,
    OperationResult,
    OperationSkippedError,
    OperationTimeoutError,
    first_critical_failure,
)

__all__ = [
    "DependencyFailedError",
    "Operation",
    "OperationCoordinator",
    "OperationGraphError",
    "OperationPriority",
    "OperationResult",
    "OperationSkippedError",
    "OperationTimeoutError",
    "first_critical_failure",
]
