"""Git command execution and working-tree lifecycle."""

from src.devspace.git.errors import GitErrorKind, classify_git_error, is_recoverable
from src.devspace.git.runner import GitCommandError, GitCommandRunner, GitResult
from src.devspace.git.worktrees import (
    WorktreeManager,
    WorktreeRecord,
    WorktreeSetupResult,
)

__all__ = [
    "GitCommandError",
    "GitCommandRunner",
    "GitErrorKind",
    "GitResult",
    "WorktreeManager",
    "WorktreeRecord",
    "WorktreeSetupResult",
    "classify_git_error",
    "is_recoverable",
]
