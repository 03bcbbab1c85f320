"""Workspace directories, conflict resolution and post-setup commands."""

from src.devspace.provisioner.conflict import WorkspaceConflictResolver
from src.devspace.provisioner.models import (
    ConflictPolicy,
    ConflictResolution,
    GenerationRequest,
    PostSetupResult,
    ProvisionOutcome,
)
from src.devspace.provisioner.post_setup import PostSetupRunner
from src.devspace.provisioner.workspace import (
    WorkspaceProvisionError,
    WorkspaceProvisioner,
)

__all__ = [
    "ConflictPolicy",
    "ConflictResolution",
    "GenerationRequest",
    "PostSetupResult",
    "PostSetupRunner",
    "ProvisionOutcome",
    "WorkspaceConflictResolver",
    "WorkspaceProvisionError",
    "WorkspaceProvisioner",
]
