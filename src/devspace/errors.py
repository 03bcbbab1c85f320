"""Error types for workspace orchestration.

Every error raised to the caller is a WorkspaceError carrying an
ErrorKind and, where known, the exact command that fixes the problem.
format_error() renders the single actionable message shown to the
operator.

Error kinds:
- CONFIG_PARSE: Malformed configuration (fatal, never cached)
- CONFIG_NOT_FOUND: No configuration file at any searched location
- PROJECT_NOT_FOUND: Unknown project key
- PATH_CONFLICT: Workspace exists and the policy forbids proceeding
- VERSION_CONTROL_FALLBACK: Recognized git conflict, recovered locally
- VERSION_CONTROL_FATAL: Unrecognized git failure, triggers rollback
- SUBPROCESS_TIMEOUT: Post-setup command exceeded its bound (non-fatal)
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union


class ErrorKind(str, Enum):
    """Closed set of error categories surfaced by the orchestrator."""

    CONFIG_PARSE = "config_parse"
    CONFIG_NOT_FOUND = "config_not_found"
    PROJECT_NOT_FOUND = "project_not_found"
    PATH_CONFLICT = "path_conflict"
    VERSION_CONTROL_FALLBACK = "version_control_fallback"
    VERSION_CONTROL_FATAL = "version_control_fatal"
    SUBPROCESS_TIMEOUT = "subprocess_timeout"


class WorkspaceError(Exception):
    """Base class for all workspace orchestration errors.

    Attributes:
        message: Human-readable description of what failed.
        remedy: Optional command or instruction that resolves the problem.
    """

    kind: ErrorKind = ErrorKind.VERSION_CONTROL_FATAL

    def __init__(self, message: str, remedy: Optional[str] = None):
        self.message = message
        self.remedy = remedy
        super().__init__(message)


class ConfigParseError(WorkspaceError):
    """Raised when a configuration file cannot be parsed or validated."""

    kind = ErrorKind.CONFIG_PARSE

    def __init__(self, path: Union[str, Path], message: str):
        self.path = Path(path)
        super().__init__(
            f"Failed to parse configuration {self.path}: {message}",
            remedy=f"Fix the syntax in {self.path} and re-run the command",
        )


class ConfigNotFoundError(WorkspaceError):
    """Raised when no configuration file exists at any searched location."""

    kind = ErrorKind.CONFIG_NOT_FOUND

    def __init__(self, searched: list):
        self.searched = [Path(p) for p in searched]
        checked = ", ".join(str(p) for p in self.searched)
        super().__init__(
            f"Configuration file not found. Checked: {checked}",
            remedy="Create ~/.devspace.yaml or set DEVSPACE_CONFIG_PATH",
        )


class ProjectNotFoundError(WorkspaceError):
    """Raised when a project key is not present in the configuration."""

    kind = ErrorKind.PROJECT_NOT_FOUND

    def __init__(self, identifier: str, available: list):
        self.identifier = identifier
        self.available = list(available)
        super().__init__(
            f"Unknown project '{identifier}'. "
            f"Available projects: {', '.join(self.available) or '(none)'}"
        )


class PathConflictError(WorkspaceError):
    """Raised when a workspace directory exists and cannot be replaced."""

    kind = ErrorKind.PATH_CONFLICT

    def __init__(self, workspace_dir: Union[str, Path], remedy: Optional[str] = None):
        self.workspace_dir = Path(workspace_dir)
        super().__init__(
            f"Workspace directory already exists: {self.workspace_dir}",
            remedy=remedy or "Re-run with --silent to overwrite the existing workspace",
        )


class VersionControlFallbackError(WorkspaceError):
    """A recognized git conflict that exhausted the fallback chain.

    Never raised to the caller; carried on the worktree setup result so
    the orchestrator can continue in workspace-only mode.
    """

    kind = ErrorKind.VERSION_CONTROL_FALLBACK

    def __init__(self, message: str, git_kind: Optional[str] = None):
        self.git_kind = git_kind
        super().__init__(message)


class VersionControlFatalError(WorkspaceError):
    """Raised for git failures outside the recognized conflict classes."""

    kind = ErrorKind.VERSION_CONTROL_FATAL

    def __init__(self, message: str, stderr: str = "", remedy: Optional[str] = None):
        self.stderr = stderr
        super().__init__(message, remedy=remedy)


class SubprocessTimeoutError(WorkspaceError):
    """Raised when a bounded subprocess exceeds its wall-clock limit."""

    kind = ErrorKind.SUBPROCESS_TIMEOUT

    def __init__(self, command: str, timeout_seconds: float):
        self.command = command
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Command timed out after {timeout_seconds:g}s: {command}",
            remedy="Run the command manually inside the workspace; the workspace is still usable",
        )


def format_error(error: BaseException) -> str:
    """Render an error as the single message shown to the operator.

    Args:
        error: Any exception raised by the orchestrator.

    Returns:
        One line describing what failed, followed by the remedy when known.
    """
    if isinstance(error, WorkspaceError):
        label = error.kind.value.replace("_", " ").capitalize()
        text = f"{label}: {error.message}"
        if error.remedy:
            text += f"\n  -> {error.remedy}"
        return text
    return f"Unexpected error: {error}"
