"""Workspace directory management.

Creates the workspace root with appropriate permissions, detects whether
an existing workspace has contents, and lists the workspaces of a
project.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

WORKSPACE_DIR_PERMISSIONS = 0o755


class WorkspaceProvisionError(Exception):
    """Raised when the workspace directory cannot be prepared."""

    pass


class WorkspaceProvisioner:
    """Creates and inspects workspace directories.

    Attributes:
        dry_run: When True, directories are logged and not created.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def create_workspace_directory(self, workspace_dir: Path) -> Path:
        """Create the workspace directory and any missing parents.

        Args:
            workspace_dir: Path to create.

        Returns:
            The created path.

        Raises:
            WorkspaceProvisionError: If creation or chmod fails.
        """
        if self.dry_run:
            logger.info("[dry run] create %s", workspace_dir)
            return workspace_dir

        try:
            workspace_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceProvisionError(
                f"Failed to create workspace at {workspace_dir}: {exc}"
            ) from exc

        try:
            workspace_dir.chmod(WORKSPACE_DIR_PERMISSIONS)
        except OSError as exc:
            raise WorkspaceProvisionError(
                f"Failed to set permissions on {workspace_dir}: {exc}"
            ) from exc

        logger.debug(
            "Workspace directory ready",
            extra={"workspace": str(workspace_dir)},
        )
        return workspace_dir

    @staticmethod
    def has_contents(workspace_dir: Path) -> bool:
        """Return True if the directory exists and is not empty."""
        if not workspace_dir.is_dir():
            return False
        return any(workspace_dir.iterdir())

    @staticmethod
    def list_workspaces(base_dir: Path) -> list[str]:
        """List workspace names under a project's base directory.

        Args:
            base_dir: ``<src_dir>/<workspace_base>/<project key>``.

        Returns:
            Sorted directory names (files are ignored).
        """
        if not base_dir.is_dir():
            return []
        return sorted(entry.name for entry in base_dir.iterdir() if entry.is_dir())
