"""Workspace progress event models.

This module defines the data models for progress events, including:
- OperationPhase: Enum of lifecycle phases an operation passes through
- WorkspaceEvent: Structured {operation_id, phase} event with metadata

Operations emit events to a channel instead of updating a progress
display directly; a separate presentation layer consumes the channel.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class OperationPhase(str, Enum):
    """Lifecycle phases reported for each orchestrated operation.

    Attributes:
        STARTED: The operation's action began executing.
        COMPLETED: The action finished successfully.
        FAILED: The action raised, or a dependency it required failed.
        SKIPPED: The operation was never started (run halted or step omitted).
        TIMEOUT: The action exceeded its time limit.
    """

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class WorkspaceEvent(BaseModel):
    """Structured progress event emitted during orchestration.

    Attributes:
        operation_id: Identifier of the operation (e.g., "worktrees").
        phase: The lifecycle phase being reported.
        workspace: Label of the workspace run the event belongs to.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the phase.

    Details Field Conventions:
        For COMPLETED / FAILED events:
            - duration_seconds: Wall-clock time of the action
            - error: Error message (FAILED only)
            - critical: Whether the operation was critical

        For TIMEOUT events:
            - timeout_seconds: Configured limit
    """

    operation_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the operation the event refers to",
    )

    phase: OperationPhase = Field(
        ...,
        description="Lifecycle phase being reported",
    )

    workspace: str = Field(
        default="",
        description="Label of the orchestration run",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the phase",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert the event to a flat dictionary for structured logging.

        Returns:
            Dict[str, Any]: Flat dictionary representation of the event.
        """
        return {
            "operation_id": self.operation_id,
            "phase": self.phase.value,
            "workspace": self.workspace,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
