"""Project registry backed by the configuration cache.

The registry discovers the YAML configuration file, loads it through
ConfigCache, and answers project lookups and workspace path questions.
Path resolution rules:

- ``~`` in src_dir, repo and sample_repo expands to the home directory
- A repository given as a URL maps to ``<src_dir>/<name without .git>``
- A relative local repository path resolves against src_dir
- A relative env_files_dir resolves against the configuration file's directory
"""

import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog
import yaml
from pydantic import ValidationError

from src.devspace.cache.store import ConfigCache
from src.devspace.errors import (
    ConfigNotFoundError,
    ConfigParseError,
    ProjectNotFoundError,
)
from src.devspace.projects.models import (
    GlobalConfig,
    ProjectConfig,
    WorkspaceConfigFile,
    WorkspacePaths,
)


logger = structlog.get_logger()

DEFAULT_CONFIG_LOCATIONS = (
    Path("~/.devspace.yaml"),
    Path("devspace.yaml"),
)

REMOTE_PREFIXES = ("http://", "https://", "ssh://", "git@")

DEFAULT_ENV_FILES_DIR = "env-files"


def is_remote(location: str) -> bool:
    """Return True if a repository location is a URL rather than a path."""
    return location.startswith(REMOTE_PREFIXES)


def repository_name(location: str) -> str:
    """Return the repository name from a URL or path, without ``.git``.

    Example:
        >>> repository_name("git@github.com:acme/widgets.git")
        'widgets'
    """
    name = re.split(r"[/:]", location.rstrip("/"))[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def workspace_name_for_branch(branch: str) -> str:
    """Derive a filesystem-safe workspace name from a branch name.

    Args:
        branch: Git branch name (e.g., "feature/x").

    Returns:
        The branch with path separators replaced (e.g., "feature_x").

    Raises:
        ValueError: If the branch yields an empty or traversal name.
    """
    name = branch.strip().replace("/", "_").replace("\\", "_")
    if name in ("", ".", ".."):
        raise ValueError(f"Invalid branch name for a workspace: {branch!r}")
    return name


def _validate_workspace_name(workspace_name: str) -> None:
    if workspace_name in ("", ".", "..") or "/" in workspace_name or "\\" in workspace_name:
        raise ValueError(f"Invalid workspace name: {workspace_name!r}")


def parse_config_file(text: str, path: Path) -> WorkspaceConfigFile:
    """Parse and validate configuration text.

    Used as the ConfigCache parser. Repository and env-file locations in
    the returned model are already resolved.

    Args:
        text: Raw YAML content.
        path: Resolved path of the file (for messages and relative paths).

    Returns:
        WorkspaceConfigFile with resolved locations.

    Raises:
        ConfigParseError: If the YAML is malformed or fails validation.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigParseError(path, f"invalid YAML: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigParseError(path, "top-level value must be a mapping")

    projects = raw.get("projects") or {}
    if not isinstance(projects, dict):
        raise ConfigParseError(path, "'projects' must be a mapping")

    prepared = dict(raw)
    prepared["projects"] = {}
    for key, entry in projects.items():
        if not isinstance(entry, dict):
            raise ConfigParseError(path, f"project '{key}' must be a mapping")
        prepared["projects"][str(key)] = {**entry, "key": str(key)}

    try:
        config = WorkspaceConfigFile.model_validate(prepared)
    except ValidationError as e:
        raise ConfigParseError(path, str(e)) from e

    return _resolve_locations(config, path.parent)


def _resolve_locations(config: WorkspaceConfigFile, config_dir: Path) -> WorkspaceConfigFile:
    src_dir = Path(config.global_.src_dir).expanduser()

    env_files_dir = config.global_.env_files_dir
    if env_files_dir is not None:
        env_dir = Path(env_files_dir).expanduser()
        if not env_dir.is_absolute():
            env_dir = config_dir / env_dir
        env_files_dir = str(env_dir)

    global_config = config.global_.model_copy(
        update={"src_dir": str(src_dir), "env_files_dir": env_files_dir}
    )

    projects = {
        key: project.model_copy(
            update={
                "repo": _resolve_repository(project.repo, src_dir),
                "sample_repo": (
                    _resolve_repository(project.sample_repo, src_dir)
                    if project.sample_repo
                    else None
                ),
            }
        )
        for key, project in config.projects.items()
    }

    return config.model_copy(update={"global_": global_config, "projects": projects})


def _resolve_repository(location: str, src_dir: Path) -> str:
    if is_remote(location):
        return location
    local = Path(location).expanduser()
    if not local.is_absolute():
        local = src_dir / local
    return str(local)


def _clone_path(location: str, src_dir: Path) -> Path:
    if is_remote(location):
        return src_dir / repository_name(location)
    return Path(location)


class ProjectRegistry:
    """Answers project and workspace-path lookups from the configuration file.

    Attributes:
        cache: ConfigCache used for every load.
    """

    def __init__(
        self,
        cache: ConfigCache,
        config_path: Optional[Union[str, Path]] = None,
        search_paths: Optional[Iterable[Union[str, Path]]] = None,
    ):
        self.cache = cache
        self._config_path = Path(config_path).expanduser() if config_path else None
        self._search_paths = [
            Path(p).expanduser()
            for p in (search_paths if search_paths is not None else DEFAULT_CONFIG_LOCATIONS)
        ]

    def config_file(self) -> Path:
        """Locate the configuration file.

        Raises:
            ConfigNotFoundError: If no candidate exists.
        """
        candidates = [self._config_path] if self._config_path else self._search_paths
        for candidate in candidates:
            if candidate.is_file():
                return candidate.resolve()
        raise ConfigNotFoundError(candidates)

    def load(self) -> WorkspaceConfigFile:
        """Return the parsed configuration, served from the cache when valid."""
        return self.cache.load(self.config_file(), parse_config_file)

    @property
    def global_config(self) -> GlobalConfig:
        return self.load().global_

    def list_projects(self) -> List[str]:
        """Return all configured project keys."""
        return list(self.load().projects.keys())

    def get_project(self, key: str) -> ProjectConfig:
        """Return the project with the exact key.

        Raises:
            ProjectNotFoundError: If the key is not configured.
        """
        projects = self.load().projects
        if key not in projects:
            raise ProjectNotFoundError(key, list(projects.keys()))
        return projects[key]

    def find_project(self, identifier: str) -> ProjectConfig:
        """Find a project by key, case-insensitive key, or repository name.

        Raises:
            ProjectNotFoundError: If nothing matches.
        """
        projects = self.load().projects
        if identifier in projects:
            return projects[identifier]

        wanted = identifier.lower()
        for key, project in projects.items():
            if key.lower() == wanted:
                return project

        for project in projects.values():
            if repository_name(project.repo).lower() == wanted:
                return project

        raise ProjectNotFoundError(identifier, list(projects.keys()))

    def env_file_path(self, key: str) -> Optional[Path]:
        """Return the project's env file path, or None if it has none."""
        project = self.get_project(key)
        if not project.env_file:
            return None
        env_dir = self.global_config.env_files_dir
        if env_dir is None:
            env_dir = str(self.config_file().parent / DEFAULT_ENV_FILES_DIR)
        return Path(env_dir) / project.env_file

    def project_base_dir(self, key: str) -> Path:
        """Return the directory holding every workspace of a project."""
        project = self.get_project(key)
        global_config = self.global_config
        return Path(global_config.src_dir) / global_config.workspace_base / project.key

    def resolve_workspace_paths(self, key: str, workspace_name: str) -> WorkspacePaths:
        """Compute the on-disk layout of a workspace.

        Args:
            key: Project key.
            workspace_name: Filesystem-safe workspace name.

        Returns:
            WorkspacePaths for the pair.

        Raises:
            ProjectNotFoundError: If the key is not configured.
            ConfigParseError: If repo and sample_repo would share a working-tree
                directory.
            ValueError: If workspace_name is not a single path component.
        """
        _validate_workspace_name(workspace_name)
        project = self.get_project(key)
        src_dir = Path(self.global_config.src_dir)

        base_dir = self.project_base_dir(key)
        workspace_dir = base_dir / workspace_name

        source_repo_path = _clone_path(project.repo, src_dir)
        source_path = workspace_dir / repository_name(str(source_repo_path))

        companion_repo_path = None
        companion_path = None
        if project.sample_repo:
            companion_repo_path = _clone_path(project.sample_repo, src_dir)
            companion_path = workspace_dir / repository_name(project.sample_repo)
            if companion_path == source_path:
                raise ConfigParseError(
                    self.config_file(),
                    f"project '{key}': repo and sample_repo share the directory name "
                    f"'{source_path.name}' inside the workspace",
                )

        logger.debug(
            "Workspace paths resolved",
            project=key,
            workspace=workspace_name,
            workspace_dir=str(workspace_dir),
        )

        return WorkspacePaths(
            src_dir=src_dir,
            base_dir=base_dir,
            workspace_dir=workspace_dir,
            source_repo_path=source_repo_path,
            source_path=source_path,
            companion_repo_path=companion_repo_path,
            companion_path=companion_path,
        )
