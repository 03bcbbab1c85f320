"""Project configuration and workspace path resolution."""

from src.devspace.projects.models import (
    GlobalConfig,
    ProjectConfig,
    WorkspaceConfigFile,
    WorkspacePaths,
)
from src.devspace.projects.registry import (
    ProjectRegistry,
    parse_config_file,
    repository_name,
    workspace_name_for_branch,
)

__all__ = [
    "GlobalConfig",
    "ProjectConfig",
    "ProjectRegistry",
    "WorkspaceConfigFile",
    "WorkspacePaths",
    "parse_config_file",
    "repository_name",
    "workspace_name_for_branch",
]
