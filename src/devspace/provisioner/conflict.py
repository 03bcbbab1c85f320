"""Workspace conflict resolution.

Decides what happens to a workspace directory that already has contents
before it is (re)provisioned:

- ABSENT: directory missing or empty, nothing to do
- SILENT policy: clean up through the working-tree manager
- INTERACTIVE policy: ask "Clean and overwrite? [y/N]"; clean only on yes,
  otherwise keep the existing directory and skip provisioning
- FAIL policy, or INTERACTIVE without a terminal: raise PathConflictError
"""

import asyncio
import logging
import sys
import time
from typing import Awaitable, Callable, Optional

from src.devspace.errors import PathConflictError
from src.devspace.events.emitter import EventEmitter, NullEventEmitter
from src.devspace.events.models import OperationPhase, WorkspaceEvent
from src.devspace.git.worktrees import WorktreeManager
from src.devspace.projects.models import WorkspacePaths
from src.devspace.provisioner.models import ConflictPolicy, ConflictResolution
from src.devspace.provisioner.workspace import WorkspaceProvisioner

logger = logging.getLogger(__name__)

CONFLICT_PROMPT = "Clean and overwrite? [y/N] "

AFFIRMATIVE_ANSWERS = ("y", "yes")

CLEANUP_OPERATION_ID = "cleanup"


async def prompt_operator(question: str) -> str:
    """Read one line from stdin without blocking the event loop."""
    return await asyncio.to_thread(input, question)


class WorkspaceConflictResolver:
    """Applies a ConflictPolicy to an existing workspace directory.

    Attributes:
        worktree_manager: Performs the cleanup.
    """

    def __init__(
        self,
        worktree_manager: WorktreeManager,
        prompt: Optional[Callable[[str], Awaitable[str]]] = None,
        is_interactive: Optional[Callable[[], bool]] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        self.worktree_manager = worktree_manager
        self._prompt = prompt or prompt_operator
        self._is_interactive = is_interactive or sys.stdin.isatty
        self._emitter = emitter or NullEventEmitter()

    async def resolve(
        self,
        paths: WorkspacePaths,
        branch: str,
        policy: ConflictPolicy,
    ) -> ConflictResolution:
        """Resolve a conflict with an existing workspace directory.

        Args:
            paths: Resolved workspace layout.
            branch: Branch whose working trees would be cleaned up.
            policy: Policy to apply when the directory has contents.

        Returns:
            The resolution taken.

        Raises:
            PathConflictError: Under FAIL, or INTERACTIVE without a terminal.
        """
        if not WorkspaceProvisioner.has_contents(paths.workspace_dir):
            return ConflictResolution.ABSENT

        if policy == ConflictPolicy.SILENT:
            logger.warning(
                "Workspace %s already exists, removing it",
                paths.workspace_dir,
                extra={"workspace": str(paths.workspace_dir), "policy": policy.value},
            )
            await self._cleanup(paths, branch)
            return ConflictResolution.CLEANED

        if policy == ConflictPolicy.INTERACTIVE and self._is_interactive():
            answer = await self._prompt(
                f"Workspace already exists: {paths.workspace_dir}\n{CONFLICT_PROMPT}"
            )
            if answer.strip().lower() in AFFIRMATIVE_ANSWERS:
                await self._cleanup(paths, branch)
                return ConflictResolution.CLEANED
            logger.info(
                "Keeping existing workspace %s",
                paths.workspace_dir,
                extra={"workspace": str(paths.workspace_dir)},
            )
            return ConflictResolution.KEEP_EXISTING

        raise PathConflictError(paths.workspace_dir)

    async def _cleanup(self, paths: WorkspacePaths, branch: str) -> None:
        workspace = paths.workspace_dir.name
        start = time.monotonic()
        await self._emit(OperationPhase.STARTED, workspace)
        removed = await self.worktree_manager.cleanup(paths, branch)
        await self._emit(
            OperationPhase.COMPLETED if removed else OperationPhase.FAILED,
            workspace,
            duration_seconds=round(time.monotonic() - start, 4),
            critical=False,
        )

    async def _emit(self, phase: OperationPhase, workspace: str, **details) -> None:
        await self._emitter.emit(
            WorkspaceEvent(
                operation_id=CLEANUP_OPERATION_ID,
                phase=phase,
                workspace=workspace,
                details=details,
            )
        )
