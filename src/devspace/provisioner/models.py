"""Workspace provisioning models.

- ConflictPolicy: How a pre-existing workspace directory is handled
- ConflictResolution: What the conflict resolver decided
- GenerationRequest: Input for the external template generator
- PostSetupResult: Result of the project's post-setup command
- ProvisionOutcome: Result returned by WorkspaceOrchestrator.provision_workspace
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from src.devspace.context.models import IssueRecord
from src.devspace.git.worktrees import WorktreeSetupResult
from src.devspace.projects.models import ProjectConfig, WorkspacePaths


class ConflictPolicy(str, Enum):
    """Policy applied when the workspace directory already has contents.

    Attributes:
        SILENT: Always clean up and recreate (unattended runs).
        INTERACTIVE: Ask the operator; keep the directory unless confirmed.
        FAIL: Raise PathConflictError without prompting.
    """

    SILENT = "silent"
    INTERACTIVE = "interactive"
    FAIL = "fail"


class ConflictResolution(str, Enum):
    """Decision taken by the conflict resolver.

    Attributes:
        ABSENT: No directory with contents existed; nothing was done.
        CLEANED: The existing workspace was cleaned up.
        KEEP_EXISTING: The operator declined; the directory is used as is.
    """

    ABSENT = "absent"
    CLEANED = "cleaned"
    KEEP_EXISTING = "keep_existing"

    @property
    def cleanup_performed(self) -> bool:
        return self is ConflictResolution.CLEANED


@dataclass
class PostSetupResult:
    """Result of the project's post-setup command.

    Attributes:
        success: True when the command exited with code 0.
        exit_code: Process exit code (-1 when not run or killed).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
        skipped: True if the command was not run.
    """

    success: bool
    exit_code: int = -1
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    skipped: bool = False


@dataclass
class GenerationRequest:
    """Input handed to the external template generator.

    Attributes:
        project: The project being provisioned.
        paths: Resolved workspace layout.
        branch: Branch the workspace was created for.
        context: Issue records gathered by the context step.
        worktrees_created: False in workspace-only mode.
    """

    project: ProjectConfig
    paths: WorkspacePaths
    branch: str
    context: List[IssueRecord] = field(default_factory=list)
    worktrees_created: bool = True


@dataclass
class ProvisionOutcome:
    """Result of provisioning a workspace.

    Attributes:
        worktrees_created: True if every working tree was created.
        cleanup_performed: True if an existing workspace was cleaned first.
        reused_existing: True if the operator kept the existing directory.
        worktree_setup: Detailed working-tree result, when setup ran.
        context: Issue records gathered for generation.
        post_setup: Post-setup command result, when one is configured.
        post_setup_error: Non-fatal error from the post-setup step.
    """

    worktrees_created: bool
    cleanup_performed: bool
    reused_existing: bool = False
    worktree_setup: Optional[WorktreeSetupResult] = None
    context: List[IssueRecord] = field(default_factory=list)
    post_setup: Optional[PostSetupResult] = None
    post_setup_error: Optional[Exception] = None
