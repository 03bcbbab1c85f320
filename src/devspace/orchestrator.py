"""Workspace orchestrator connecting all provisioning steps.

Provisioning a workspace for (project, branch) runs:

    conflict resolution → directories (critical)
        → {context, worktrees} (concurrent)
        → generate (external, optional)
        → post_setup (non-fatal)

Steps run through the OperationCoordinator, which publishes progress
events. A failed critical step, a context failure, a fatal git failure or
a generator failure rolls the workspace back through the working-tree
manager's cleanup and re-raises. Rollback only deletes branches that did
not exist before the attempt. A working-tree fallback continues in
workspace-only mode. The orchestrator delegates all work to injected
dependencies.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from src.devspace.cache.store import ConfigCache
from src.devspace.context.fetcher import (
    ContextFetcher,
    NullContextFetcher,
    extract_github_repo_info,
)
from src.devspace.context.models import IssueRecord
from src.devspace.coordinator.executor import OperationCoordinator
from src.devspace.coordinator.models import (
    Operation,
    OperationPriority,
    OperationResult,
)
from src.devspace.events.emitter import EventEmitter
from src.devspace.events.models import OperationPhase, WorkspaceEvent
from src.devspace.git.worktrees import WorktreeManager, WorktreeSetupResult
from src.devspace.projects.models import ProjectConfig, WorkspacePaths
from src.devspace.projects.registry import ProjectRegistry
from src.devspace.provisioner.conflict import WorkspaceConflictResolver
from src.devspace.provisioner.models import (
    ConflictPolicy,
    ConflictResolution,
    GenerationRequest,
    PostSetupResult,
    ProvisionOutcome,
)
from src.devspace.provisioner.post_setup import PostSetupRunner
from src.devspace.provisioner.workspace import WorkspaceProvisioner

logger = logging.getLogger(__name__)

WorkspaceGenerator = Callable[[GenerationRequest], Awaitable[Any]]

DIRECTORIES = "directories"
CONTEXT = "context"
WORKTREES = "worktrees"
GENERATE = "generate"
POST_SETUP = "post_setup"
TEARDOWN = "teardown"


class WorkspaceOrchestrator:
    """Provisions and tears down per-branch workspaces.

    Attributes:
        registry: Project configuration and path resolution.
        worktree_manager: Creates and removes working trees.
        provisioner: Creates workspace directories.
        conflict_resolver: Handles pre-existing workspace directories.
        coordinator: Runs provisioning steps with dependency ordering.
        post_setup_runner: Runs the project's post-setup command.
        event_emitter: Receives progress events.
        context_fetcher: Retrieves issue context (optional).
        generator: External template generator (optional).
    """

    def __init__(
        self,
        registry: ProjectRegistry,
        worktree_manager: WorktreeManager,
        provisioner: WorkspaceProvisioner,
        conflict_resolver: WorkspaceConflictResolver,
        coordinator: OperationCoordinator,
        post_setup_runner: PostSetupRunner,
        event_emitter: EventEmitter,
        context_fetcher: Optional[ContextFetcher] = None,
        generator: Optional[WorkspaceGenerator] = None,
    ):
        self.registry = registry
        self.worktree_manager = worktree_manager
        self.provisioner = provisioner
        self.conflict_resolver = conflict_resolver
        self.coordinator = coordinator
        self.post_setup_runner = post_setup_runner
        self.event_emitter = event_emitter
        self.context_fetcher = context_fetcher or NullContextFetcher()
        self.generator = generator

    @property
    def cache(self) -> ConfigCache:
        return self.registry.cache

    async def start(self) -> None:
        """Start background services (configuration watcher)."""
        self.cache.start()

    async def shutdown(self) -> None:
        """Stop background services and release clients and emitters."""
        self.cache.shutdown()
        await self.context_fetcher.close()
        await self.event_emitter.close()

    def resolve_workspace_paths(self, project_key: str, workspace_name: str) -> WorkspacePaths:
        """Compute the on-disk layout for a project and workspace name."""
        return self.registry.resolve_workspace_paths(project_key, workspace_name)

    # -------------------------------------------------------------------------
    # Provisioning
    # -------------------------------------------------------------------------

    async def provision_workspace(
        self,
        project: ProjectConfig,
        paths: WorkspacePaths,
        branch: str,
        policy: ConflictPolicy = ConflictPolicy.FAIL,
        issue_ids: Sequence[int] = (),
    ) -> ProvisionOutcome:
        """Provision a workspace for a project and branch.

        Args:
            project: The project to provision.
            paths: Resolved workspace layout.
            branch: Branch for the primary repository's working tree.
            policy: How to handle an existing workspace directory.
            issue_ids: Issue or pull request numbers to gather context for.

        Returns:
            ProvisionOutcome describing what was done.

        Raises:
            PathConflictError: If the directory exists and the policy forbids
                proceeding.
            VersionControlFatalError: On an unrecognized git failure.
            Exception: Any fatal step failure, after rollback.
        """
        logger.info(
            "Provisioning workspace",
            extra={
                "project": project.key,
                "branch": branch,
                "workspace": str(paths.workspace_dir),
                "policy": policy.value,
            },
        )

        resolution = await self.conflict_resolver.resolve(paths, branch, policy)
        if resolution == ConflictResolution.KEEP_EXISTING:
            return ProvisionOutcome(
                worktrees_created=False,
                cleanup_performed=False,
                reused_existing=True,
            )

        existing_branches = await self.worktree_manager.branch_repositories(paths, branch)
        self.coordinator.clear(label=paths.workspace_dir.name)
        try:
            outcome = await self._run_steps(project, paths, branch, list(issue_ids))
        except Exception as exc:
            logger.error(
                "Provisioning failed, rolling back %s: %s",
                paths.workspace_dir,
                exc,
                extra={"project": project.key, "branch": branch},
            )
            await self.worktree_manager.cleanup(
                paths, branch, keep_branch_in=existing_branches
            )
            raise

        outcome.cleanup_performed = resolution.cleanup_performed

        logger.info(
            "Workspace ready",
            extra={
                "project": project.key,
                "branch": branch,
                "worktrees_created": outcome.worktrees_created,
                "cleanup_performed": outcome.cleanup_performed,
                "duration_seconds": round(self.coordinator.total_duration(), 3),
            },
        )
        return outcome

    async def _run_steps(
        self,
        project: ProjectConfig,
        paths: WorkspacePaths,
        branch: str,
        issue_ids: List[int],
    ) -> ProvisionOutcome:
        coordinator = self.coordinator

        async def create_directories():
            return self.provisioner.create_workspace_directory(paths.workspace_dir)

        async def gather_context():
            return await self._fetch_context(project, issue_ids)

        async def setup_worktrees():
            return await self.worktree_manager.setup(project, paths, branch)

        coordinator.add_operation(
            Operation(
                id=DIRECTORIES,
                description="Creating workspace directories",
                action=create_directories,
                priority=OperationPriority.CRITICAL,
            )
        )
        coordinator.add_operation(
            Operation(
                id=CONTEXT,
                description="Gathering issue context",
                action=gather_context,
                dependencies=[DIRECTORIES],
            )
        )
        coordinator.add_operation(
            Operation(
                id=WORKTREES,
                description="Setting up working trees",
                action=setup_worktrees,
                dependencies=[DIRECTORIES],
            )
        )

        directories, context, worktrees = await coordinator.execute_in_parallel(
            [DIRECTORIES, CONTEXT, WORKTREES]
        )
        self._raise_if_failed(directories)
        self._raise_if_failed(context)
        self._raise_if_failed(worktrees)

        setup: WorktreeSetupResult = worktrees.result
        records: List[IssueRecord] = context.result or []
        worktrees_created = setup.created and not setup.fallback

        if setup.fallback:
            logger.info(
                "Continuing in workspace-only mode",
                extra={"project": project.key, "branch": branch},
            )

        outcome = ProvisionOutcome(
            worktrees_created=worktrees_created,
            cleanup_performed=False,
            worktree_setup=setup,
            context=records,
        )

        if self.generator is not None:
            request = GenerationRequest(
                project=project,
                paths=paths,
                branch=branch,
                context=records,
                worktrees_created=worktrees_created,
            )

            async def generate():
                return await self.generator(request)

            coordinator.add_operation(
                Operation(
                    id=GENERATE,
                    description="Generating workspace files",
                    action=generate,
                    priority=OperationPriority.CRITICAL,
                    dependencies=[CONTEXT, WORKTREES],
                )
            )
            (generated,) = await coordinator.execute_in_parallel([GENERATE])
            self._raise_if_failed(generated)

        if project.post_setup_command:
            post_setup = await self._run_post_setup(project, paths, worktrees_created)
            if post_setup.success:
                outcome.post_setup = post_setup.result
            else:
                outcome.post_setup_error = post_setup.error

        return outcome

    async def _fetch_context(
        self, project: ProjectConfig, issue_ids: List[int]
    ) -> List[IssueRecord]:
        if not issue_ids:
            return []
        info = extract_github_repo_info(project.repo)
        org = project.github_org or info.org
        return await self.context_fetcher.fetch(issue_ids, org, info.repo)

    async def _run_post_setup(
        self,
        project: ProjectConfig,
        paths: WorkspacePaths,
        worktrees_created: bool,
    ) -> OperationResult:
        async def post_setup() -> PostSetupResult:
            env_file = self.registry.env_file_path(project.key) if project.env_file else None
            return await self.post_setup_runner.run(
                project.post_setup_command,
                paths,
                worktrees_created=worktrees_created,
                env_file=env_file,
            )

        dependencies = [GENERATE] if self.generator is not None else [CONTEXT, WORKTREES]
        self.coordinator.add_operation(
            Operation(
                id=POST_SETUP,
                description="Running post-setup command",
                action=post_setup,
                dependencies=dependencies,
            )
        )
        (result,) = await self.coordinator.execute_in_parallel([POST_SETUP])

        if not result.success:
            logger.warning(
                "Post-setup step failed, workspace remains usable: %s",
                result.error,
                extra={"project": project.key},
            )
        return result

    @staticmethod
    def _raise_if_failed(result: Optional[OperationResult]) -> None:
        if result is not None and not result.success:
            raise result.error

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def teardown_workspace(self, paths: WorkspacePaths, branch: str) -> bool:
        """Remove a workspace's working trees, branch and directory.

        Returns:
            True if the workspace directory no longer exists.
        """
        workspace = paths.workspace_dir.name
        await self._safe_emit(TEARDOWN, OperationPhase.STARTED, workspace)
        removed = await self.worktree_manager.cleanup(paths, branch)
        await self._safe_emit(
            TEARDOWN,
            OperationPhase.COMPLETED if removed else OperationPhase.FAILED,
            workspace,
        )
        logger.info(
            "Workspace torn down" if removed else "Workspace teardown incomplete",
            extra={"workspace": str(paths.workspace_dir), "branch": branch},
        )
        return removed

    async def _safe_emit(
        self,
        operation_id: str,
        phase: OperationPhase,
        workspace: str,
    ) -> None:
        """Emit an event, logging but not propagating failures."""
        try:
            await self.event_emitter.emit(
                WorkspaceEvent(
                    operation_id=operation_id,
                    phase=phase,
                    workspace=workspace,
                )
            )
        except Exception:
            logger.exception(
                "Failed to emit event",
                extra={"operation_id": operation_id},
            )
