"""Entry points for workspace orchestration.

This module wires settings into a WorkspaceOrchestrator and exposes the
coroutines a command layer calls:

- provision(): resolve a project, provision a workspace for a branch
- teardown(): remove a workspace and its working trees

It also configures logging (stdlib logging with structlog routed through
it) and logs the effective configuration with secrets redacted.
"""

import logging
from typing import Optional, Sequence

import structlog

from src.devspace.cache.store import ConfigCache
from src.devspace.config import DevspaceSettings, get_settings
from src.devspace.context.fetcher import GitHubContextFetcher
from src.devspace.errors import format_error
from src.devspace.coordinator.executor import OperationCoordinator
from src.devspace.events.emitter import EventEmitter, create_event_emitter
from src.devspace.git.runner import GitCommandRunner
from src.devspace.git.worktrees import WorktreeManager
from src.devspace.orchestrator import WorkspaceGenerator, WorkspaceOrchestrator
from src.devspace.projects.registry import ProjectRegistry, workspace_name_for_branch
from src.devspace.provisioner.conflict import WorkspaceConflictResolver
from src.devspace.provisioner.models import ConflictPolicy, ProvisionOutcome
from src.devspace.provisioner.post_setup import PostSetupRunner
from src.devspace.provisioner.workspace import WorkspaceProvisioner

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure stdlib logging and route structlog through it.

    Recovered fallbacks log at DEBUG, so they only appear with verbose.

    Args:
        verbose: Lower the level to DEBUG.
        level: Level name used when verbose is False.
    """
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "(not set)"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: DevspaceSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.debug("Devspace configuration:")
    logger.debug(f"  Config Path: {settings.config_path or '(searched)'}")
    logger.debug(f"  Config Cache Disabled: {settings.disable_config_cache}")
    logger.debug(f"  Config Poll Interval: {settings.config_poll_interval_seconds}s")
    logger.debug(f"  Git Timeout: {settings.git_timeout_seconds}s")
    logger.debug(f"  Post-Setup Timeout: {settings.post_setup_timeout_seconds}s")
    logger.debug(f"  Ensure Freshness: {settings.ensure_freshness}")
    logger.debug(f"  Dry Run: {settings.dry_run}")
    logger.debug(f"  GitHub Base URL: {settings.github_base_url}")
    logger.debug(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.debug(f"  Event Sinks: {', '.join(s.value for s in settings.event_sinks)}")


def build_orchestrator(
    cfg: DevspaceSettings,
    generator: Optional[WorkspaceGenerator] = None,
    event_emitter: Optional[EventEmitter] = None,
) -> WorkspaceOrchestrator:
    """Wire all dependencies into a WorkspaceOrchestrator.

    Args:
        cfg: Validated settings.
        generator: Optional external template generator.
        event_emitter: Optional emitter overriding the configured sinks.

    Returns:
        Fully wired WorkspaceOrchestrator.
    """
    cache = ConfigCache.from_settings(cfg)
    registry = ProjectRegistry(cache=cache, config_path=cfg.config_path)

    emitter = event_emitter or create_event_emitter(cfg.event_sinks)

    git_runner = GitCommandRunner(
        timeout_seconds=cfg.git_timeout_seconds,
        dry_run=cfg.dry_run,
    )
    worktree_manager = WorktreeManager(
        runner=git_runner,
        ensure_freshness=cfg.ensure_freshness,
    )

    return WorkspaceOrchestrator(
        registry=registry,
        worktree_manager=worktree_manager,
        provisioner=WorkspaceProvisioner(dry_run=cfg.dry_run),
        conflict_resolver=WorkspaceConflictResolver(
            worktree_manager=worktree_manager,
            emitter=emitter,
        ),
        coordinator=OperationCoordinator(emitter=emitter),
        post_setup_runner=PostSetupRunner(
            timeout_seconds=cfg.post_setup_timeout_seconds,
            dry_run=cfg.dry_run,
        ),
        event_emitter=emitter,
        context_fetcher=GitHubContextFetcher(
            token=cfg.github_token,
            base_url=cfg.github_base_url,
        ),
        generator=generator,
    )


async def provision(
    project_identifier: str,
    branch: str,
    policy: ConflictPolicy = ConflictPolicy.INTERACTIVE,
    issue_ids: Sequence[int] = (),
    settings: Optional[DevspaceSettings] = None,
    generator: Optional[WorkspaceGenerator] = None,
) -> ProvisionOutcome:
    """Provision a workspace for a project and branch.

    Args:
        project_identifier: Project key, case-insensitive key, or repo name.
        branch: Branch to create the workspace for.
        policy: Conflict policy for an existing workspace directory.
        issue_ids: Issue or pull request numbers to gather context for.
        settings: Settings; read from the environment when None.
        generator: Optional external template generator.

    Returns:
        ProvisionOutcome of the run.

    Raises:
        Exception: Any provisioning failure, after it is logged as a single
            actionable message.
    """
    settings = settings or get_settings()
    _log_configuration(settings)

    orchestrator = build_orchestrator(settings, generator=generator)
    await orchestrator.start()
    try:
        project = orchestrator.registry.find_project(project_identifier)
        paths = orchestrator.resolve_workspace_paths(
            project.key, workspace_name_for_branch(branch)
        )
        return await orchestrator.provision_workspace(
            project, paths, branch, policy=policy, issue_ids=issue_ids
        )
    except Exception as e:
        logger.error(format_error(e))
        raise
    finally:
        await orchestrator.shutdown()


async def teardown(
    project_identifier: str,
    branch: str,
    settings: Optional[DevspaceSettings] = None,
) -> bool:
    """Remove the workspace of a project and branch.

    Returns:
        True if the workspace directory no longer exists.
    """
    settings = settings or get_settings()
    _log_configuration(settings)

    orchestrator = build_orchestrator(settings)
    await orchestrator.start()
    try:
        project = orchestrator.registry.find_project(project_identifier)
        paths = orchestrator.resolve_workspace_paths(
            project.key, workspace_name_for_branch(branch)
        )
        return await orchestrator.teardown_workspace(paths, branch)
    except Exception as e:
        logger.error(format_error(e))
        raise
    finally:
        await orchestrator.shutdown()
