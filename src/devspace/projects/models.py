"""Project configuration models.

This module defines the models loaded from the YAML configuration file:
- ProjectConfig: A primary repository and optional companion repository
- GlobalConfig: Source root, workspace base and env-file settings
- WorkspaceConfigFile: The whole file (``global`` block plus ``projects``)

and the derived, never persisted WorkspacePaths value object.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectConfig(BaseModel):
    """A repository pairing provisioned as one workspace.

    Attributes:
        key: Unique identifier (the key of the entry in ``projects``).
        name: Display name.
        repo: Primary repository URL or local path.
        sample_repo: Optional companion repository URL or local path.
        env_file: Optional env file name inside ``env_files_dir``.
        post_setup_command: Optional shell command run after generation.
        github_org: Optional GitHub organization override for context.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str = Field(..., min_length=1, description="Unique project key")

    name: str = Field(..., min_length=1, description="Display name")

    repo: str = Field(..., min_length=1, description="Primary repository URL or path")

    sample_repo: Optional[str] = Field(
        default=None,
        description="Companion repository URL or path",
    )

    env_file: Optional[str] = Field(
        default=None,
        description="Env file name inside the global env_files_dir",
    )

    post_setup_command: Optional[str] = Field(
        default=None,
        alias="post-init",
        description="Shell command run in the workspace after generation",
    )

    github_org: Optional[str] = Field(
        default=None,
        description="GitHub organization used when fetching context",
    )


class GlobalConfig(BaseModel):
    """Settings shared by every project."""

    model_config = ConfigDict(frozen=True)

    src_dir: str = Field(default="~/src", description="Root source directory")

    workspace_base: str = Field(
        default="workspaces",
        min_length=1,
        description="Directory under src_dir holding all workspaces",
    )

    env_files_dir: Optional[str] = Field(
        default=None,
        description="Directory holding per-project env files",
    )


class WorkspaceConfigFile(BaseModel):
    """The parsed configuration file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")

    projects: Dict[str, ProjectConfig] = Field(default_factory=dict)

    @field_validator("projects", mode="before")
    @classmethod
    def validate_projects(cls, v):
        """Treat an empty ``projects:`` block as an empty table."""
        return {} if v is None else v


@dataclass(frozen=True)
class WorkspacePaths:
    """On-disk layout for one (project, workspace name) pair.

    Every path is a deterministic function of the project key, the
    workspace name and the configured source root.

    Attributes:
        src_dir: Configured source root.
        base_dir: ``<src_dir>/<workspace_base>/<project key>``.
        workspace_dir: ``<base_dir>/<workspace name>``.
        source_repo_path: Clone of the primary repository.
        source_path: Working tree of the primary repository.
        companion_repo_path: Clone of the companion repository, if any.
        companion_path: Working tree of the companion repository, if any.
    """

    src_dir: Path
    base_dir: Path
    workspace_dir: Path
    source_repo_path: Path
    source_path: Path
    companion_repo_path: Optional[Path] = None
    companion_path: Optional[Path] = None

    @property
    def has_companion(self) -> bool:
        return self.companion_repo_path is not None and self.companion_path is not None

    def worktree_targets(self) -> List[Tuple[Path, Path, bool]]:
        """Return (repository, working tree, is_companion) for each repository."""
        targets = [(self.source_repo_path, self.source_path, False)]
        if self.has_companion:
            targets.append((self.companion_repo_path, self.companion_path, True))
        return targets
