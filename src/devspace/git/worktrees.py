"""Working-tree lifecycle management.

Creates, verifies and destroys linked git working trees for a workspace's
primary repository and optional companion repository.

Setup, per repository:
1. Remove a stale working tree at the target path (force; prune and
   delete the directory when removal fails), then prune
2. ``git worktree add <path> -b <branch> <base>`` on a new branch
3. ``git worktree add <path> <branch>`` on the existing branch
4. ``git worktree add -f <path> <branch>`` as a last resort

The companion repository targets its own default branch. Recognized
failures move down the chain; an exhausted chain yields a fallback result
(workspace-only mode). Unrecognized failures raise VersionControlFatalError.

Cleanup never raises: every failing step is logged and the next one runs.
Branches listed in keep_branch_in survive cleanup, so a rollback never
deletes a branch the operator already had.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, List, Optional, Set

from src.devspace.errors import VersionControlFallbackError, VersionControlFatalError
from src.devspace.git.errors import GitErrorKind, UNREACHABLE_KINDS
from src.devspace.git.runner import GitCommandError, GitCommandRunner
from src.devspace.projects.models import ProjectConfig, WorkspacePaths

logger = logging.getLogger(__name__)

REMOTE_HEAD_REF = "refs/remotes/origin/HEAD"
DEFAULT_BRANCH_CANDIDATES = ("main", "master")


@dataclass
class WorktreeRecord:
    """A working tree created during setup.

    Attributes:
        repository: Path of the repository clone.
        path: Path of the new working tree.
        branch: Branch checked out in the working tree.
        mode: Which step of the chain succeeded
              ("new_branch", "existing_branch" or "forced").
    """

    repository: Path
    path: Path
    branch: str
    mode: str


@dataclass
class WorktreeSetupResult:
    """Outcome of WorktreeManager.setup().

    Attributes:
        created: True if every working tree was created.
        fallback: True if a recognized failure exhausted the chain.
        error: The fallback error, when fallback is True.
        worktrees: Working trees created before setup finished or fell back.
    """

    created: bool
    fallback: bool = False
    error: Optional[VersionControlFallbackError] = None
    worktrees: List[WorktreeRecord] = field(default_factory=list)


class _ChainExhausted(Exception):
    def __init__(self, kind: GitErrorKind, stderr: str):
        self.kind = kind
        self.stderr = stderr
        super().__init__(stderr)


class WorktreeManager:
    """Creates and removes the working trees of a workspace.

    Attributes:
        runner: GitCommandRunner used for every git invocation.
        ensure_freshness: Fetch origin before creating working trees.
    """

    def __init__(self, runner: GitCommandRunner, ensure_freshness: bool = True):
        self.runner = runner
        self.ensure_freshness = ensure_freshness

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    # -------------------------------------------------------------------------
    # Repository inspection
    # -------------------------------------------------------------------------

    def validate_repository(self, repository: Path) -> Optional[str]:
        """Check that a repository clone exists and is a git repository.

        Returns:
            None when valid, otherwise a description of the problem.
        """
        if self.dry_run:
            return None
        if not repository.is_dir():
            return f"Repository directory does not exist: {repository}"
        if not (repository / ".git").exists():
            return f"Directory is not a git repository: {repository}"
        return None

    async def get_default_branch(self, repository: Path) -> str:
        """Detect the default branch: origin HEAD, then main, then master."""
        try:
            result = await self.runner.run(
                ["symbolic-ref", REMOTE_HEAD_REF], cwd=repository, mutating=False
            )
            if result.stdout:
                return result.stdout.replace("refs/remotes/origin/", "", 1)
        except GitCommandError:
            pass

        for candidate in DEFAULT_BRANCH_CANDIDATES:
            try:
                await self.runner.run(
                    ["show-ref", "--verify", "--quiet", f"refs/heads/{candidate}"],
                    cwd=repository,
                    mutating=False,
                )
                return candidate
            except GitCommandError:
                continue

        return DEFAULT_BRANCH_CANDIDATES[0]

    async def resolve_base_ref(self, repository: Path, default_branch: str) -> str:
        """Return ``origin/<default>`` when it resolves, else the local branch."""
        remote_ref = f"origin/{default_branch}"
        try:
            await self.runner.run(
                ["rev-parse", "--verify", "--quiet", remote_ref],
                cwd=repository,
                mutating=False,
            )
            return remote_ref
        except GitCommandError:
            return default_branch

    async def branch_repositories(self, paths: WorkspacePaths, branch: str) -> Set[Path]:
        """Return the repositories in which the local branch already exists."""
        found: Set[Path] = set()
        for repository, _, _ in paths.worktree_targets():
            if not repository.is_dir():
                continue
            try:
                await self.runner.run(
                    ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"],
                    cwd=repository,
                    mutating=False,
                )
            except GitCommandError:
                continue
            found.add(repository)
        return found

    async def refresh_repository(self, repository: Path) -> None:
        """Fetch origin. Failures are logged as warnings."""
        try:
            await self.runner.run(
                ["remote", "get-url", "origin"], cwd=repository, mutating=False
            )
        except GitCommandError:
            logger.debug(
                "Repository has no origin remote, skipping fetch",
                extra={"repository": str(repository)},
            )
            return

        try:
            await self.runner.run(["fetch", "origin"], cwd=repository)
        except GitCommandError as e:
            logger.warning(
                "Could not fetch latest changes for %s: %s",
                repository,
                e.stderr,
                extra={"repository": str(repository)},
            )

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def setup(
        self,
        project: ProjectConfig,
        paths: WorkspacePaths,
        branch: str,
    ) -> WorktreeSetupResult:
        """Create working trees for the primary and companion repositories.

        Args:
            project: The project being provisioned.
            paths: Resolved workspace layout.
            branch: Branch for the primary repository's working tree.

        Returns:
            WorktreeSetupResult; fallback=True when a recognized failure
            exhausted the chain.

        Raises:
            VersionControlFatalError: On an unrecognized git failure.
        """
        created: List[WorktreeRecord] = []

        for repository, worktree_path, is_companion in paths.worktree_targets():
            problem = self.validate_repository(repository)
            if problem is not None:
                return self._fallback(
                    project, GitErrorKind.NOT_A_GIT_REPO, problem, created
                )

            if self.ensure_freshness:
                await self.refresh_repository(repository)

            default_branch = await self.get_default_branch(repository)
            target_branch = default_branch if is_companion else branch
            base_ref = await self.resolve_base_ref(repository, default_branch)

            try:
                record = await self._add_worktree(
                    repository, worktree_path, target_branch, base_ref
                )
            except _ChainExhausted as e:
                return self._fallback(project, e.kind, e.stderr, created)

            created.append(record)
            logger.info(
                "Working tree ready at %s",
                worktree_path,
                extra={
                    "project": project.key,
                    "branch": record.branch,
                    "mode": record.mode,
                },
            )

        return WorktreeSetupResult(created=True, worktrees=created)

    def _fallback(
        self,
        project: ProjectConfig,
        kind: GitErrorKind,
        detail: str,
        created: List[WorktreeRecord],
    ) -> WorktreeSetupResult:
        error = VersionControlFallbackError(
            f"Working trees unavailable for {project.key}: {detail}",
            git_kind=kind.value,
        )
        logger.debug(
            "Continuing without working trees: %s",
            detail,
            extra={"project": project.key, "git_kind": kind.value},
        )
        return WorktreeSetupResult(
            created=False,
            fallback=True,
            error=error,
            worktrees=created,
        )

    async def _add_worktree(
        self,
        repository: Path,
        worktree_path: Path,
        target_branch: str,
        base_ref: str,
    ) -> WorktreeRecord:
        await self._remove_stale(repository, worktree_path)

        path = str(worktree_path)
        attempts = (
            ("new_branch", ["worktree", "add", path, "-b", target_branch, base_ref]),
            ("existing_branch", ["worktree", "add", path, target_branch]),
            ("forced", ["worktree", "add", "-f", path, target_branch]),
        )

        last_error: Optional[GitCommandError] = None
        for mode, args in attempts:
            try:
                await self.runner.run(args, cwd=repository)
            except GitCommandError as e:
                kind = e.kind
                if kind == GitErrorKind.OTHER:
                    raise VersionControlFatalError(
                        f"Failed to create working tree at {worktree_path}: {e.stderr}",
                        stderr=e.stderr,
                        remedy=f"git -C {repository} worktree prune",
                    ) from e
                if kind in UNREACHABLE_KINDS:
                    raise _ChainExhausted(kind, e.stderr) from e
                logger.debug(
                    "git worktree add (%s) failed with %s, trying next step",
                    mode,
                    kind.value,
                    extra={"repository": str(repository), "stderr": e.stderr},
                )
                last_error = e
                continue
            return WorktreeRecord(
                repository=repository,
                path=worktree_path,
                branch=target_branch,
                mode=mode,
            )

        raise _ChainExhausted(last_error.kind, last_error.stderr)

    async def _remove_stale(self, repository: Path, worktree_path: Path) -> None:
        if worktree_path.exists():
            try:
                await self.runner.run(
                    ["worktree", "remove", "--force", str(worktree_path)],
                    cwd=repository,
                )
            except GitCommandError as e:
                logger.debug(
                    "Stale working tree removal failed, pruning instead",
                    extra={"path": str(worktree_path), "stderr": e.stderr},
                )
                await self._prune(repository)
                self._remove_directory(worktree_path)
        await self._prune(repository)

    async def _prune(self, repository: Path) -> None:
        try:
            await self.runner.run(["worktree", "prune"], cwd=repository)
        except GitCommandError as e:
            logger.debug(
                "git worktree prune failed",
                extra={"repository": str(repository), "stderr": e.stderr},
            )

    def _remove_directory(self, directory: Path) -> None:
        if self.dry_run:
            logger.info("[dry run] remove %s", directory)
            return
        if not directory.exists():
            return
        try:
            shutil.rmtree(directory)
        except OSError as e:
            logger.warning(
                "Failed to remove %s: %s",
                directory,
                e,
                extra={"path": str(directory)},
            )

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def cleanup(
        self,
        paths: WorkspacePaths,
        branch: str,
        keep_branch_in: Collection[Path] = (),
    ) -> bool:
        """Remove the workspace's working trees, branch and directory.

        Safe to call repeatedly; no step raises.

        Args:
            paths: Resolved workspace layout.
            branch: Local branch deleted from each repository.
            keep_branch_in: Repositories whose local branch is left in place.

        Returns:
            True if the workspace directory no longer exists.
        """
        for repository, worktree_path, _ in paths.worktree_targets():
            if not repository.is_dir():
                logger.debug(
                    "Repository missing, skipping git cleanup",
                    extra={"repository": str(repository)},
                )
                continue

            try:
                await self.runner.run(
                    ["worktree", "remove", "--force", str(worktree_path)],
                    cwd=repository,
                )
            except GitCommandError as e:
                logger.debug(
                    "Working tree removal failed, pruning",
                    extra={"path": str(worktree_path), "stderr": e.stderr},
                )
                await self._prune(repository)

            await self._prune(repository)

            if repository in keep_branch_in:
                logger.debug(
                    "Keeping pre-existing branch %s",
                    branch,
                    extra={"repository": str(repository)},
                )
                continue

            try:
                await self.runner.run(["branch", "-D", branch], cwd=repository)
            except GitCommandError as e:
                logger.debug(
                    "Local branch not removed",
                    extra={
                        "repository": str(repository),
                        "branch": branch,
                        "stderr": e.stderr,
                    },
                )

        self._remove_directory(paths.workspace_dir)

        if self.dry_run:
            return True
        removed = not paths.workspace_dir.exists()
        if not removed:
            logger.warning(
                "Workspace directory still present after cleanup: %s",
                paths.workspace_dir,
            )
        return removed
