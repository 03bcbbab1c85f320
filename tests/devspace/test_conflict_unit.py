"""Unit tests for workspace conflict resolution."""

import asyncio
from typing import List
from unittest.mock import AsyncMock

import pytest

from src.devspace.errors import PathConflictError
from src.devspace.events.emitter import EventEmitter
from src.devspace.events.models import OperationPhase, WorkspaceEvent
from src.devspace.git.worktrees import WorktreeManager
from src.devspace.projects.models import WorkspacePaths
from src.devspace.provisioner.conflict import CONFLICT_PROMPT, WorkspaceConflictResolver
from src.devspace.provisioner.models import ConflictPolicy, ConflictResolution


def run_async(coro):
    return asyncio.run(coro)


class RecordingEmitter(EventEmitter):
    def __init__(self):
        self.events: List[WorkspaceEvent] = []

    async def emit(self, event: WorkspaceEvent) -> None:
        self.events.append(event)


@pytest.fixture
def paths(tmp_path):
    workspace = tmp_path / "workspaces" / "widgets" / "feature_x"
    return WorkspacePaths(
        src_dir=tmp_path,
        base_dir=workspace.parent,
        workspace_dir=workspace,
        source_repo_path=tmp_path / "widgets",
        source_path=workspace / "widgets",
    )


@pytest.fixture
def existing(paths):
    paths.workspace_dir.mkdir(parents=True)
    (paths.workspace_dir / "context.md").write_text("old")
    return paths


@pytest.fixture
def manager():
    mock = AsyncMock(spec=WorktreeManager)
    mock.cleanup.return_value = True
    return mock


def _resolver(manager, answer="", interactive=True, emitter=None):
    prompt = AsyncMock(return_value=answer)
    resolver = WorkspaceConflictResolver(
        worktree_manager=manager,
        prompt=prompt,
        is_interactive=lambda: interactive,
        emitter=emitter,
    )
    return resolver, prompt


class TestNoConflict:

    @pytest.mark.parametrize("policy", list(ConflictPolicy))
    def test_missing_directory(self, manager, paths, policy):
        resolver, prompt = _resolver(manager)
        assert run_async(resolver.resolve(paths, "feature/x", policy)) == ConflictResolution.ABSENT
        manager.cleanup.assert_not_awaited()
        prompt.assert_not_awaited()

    def test_empty_directory(self, manager, paths):
        paths.workspace_dir.mkdir(parents=True)
        resolver, _ = _resolver(manager)
        resolution = run_async(resolver.resolve(paths, "feature/x", ConflictPolicy.FAIL))
        assert resolution == ConflictResolution.ABSENT


class TestSilent:

    def test_cleans_without_prompting(self, manager, existing):
        emitter = RecordingEmitter()
        resolver, prompt = _resolver(manager, emitter=emitter)

        resolution = run_async(resolver.resolve(existing, "feature/x", ConflictPolicy.SILENT))

        assert resolution == ConflictResolution.CLEANED
        assert resolution.cleanup_performed
        manager.cleanup.assert_awaited_once_with(existing, "feature/x")
        prompt.assert_not_awaited()
        assert [(e.operation_id, e.phase) for e in emitter.events] == [
            ("cleanup", OperationPhase.STARTED),
            ("cleanup", OperationPhase.COMPLETED),
        ]
        assert emitter.events[0].workspace == "feature_x"

    def test_incomplete_cleanup_reports_failed(self, manager, existing):
        manager.cleanup.return_value = False
        emitter = RecordingEmitter()
        resolver, _ = _resolver(manager, emitter=emitter)

        run_async(resolver.resolve(existing, "feature/x", ConflictPolicy.SILENT))

        assert emitter.events[-1].phase == OperationPhase.FAILED


class TestInteractive:

    @pytest.mark.parametrize("answer", ["y", "Y", "yes", " YES \n"])
    def test_confirmation_cleans(self, manager, existing, answer):
        resolver, prompt = _resolver(manager, answer=answer)

        resolution = run_async(resolver.resolve(existing, "feature/x", ConflictPolicy.INTERACTIVE))

        assert resolution == ConflictResolution.CLEANED
        manager.cleanup.assert_awaited_once()
        (question,), _ = prompt.await_args
        assert str(existing.workspace_dir) in question
        assert question.endswith(CONFLICT_PROMPT)

    @pytest.mark.parametrize("answer", ["", "n", "no", "maybe"])
    def test_anything_else_keeps_existing(self, manager, existing, answer):
        resolver, _ = _resolver(manager, answer=answer)

        resolution = run_async(resolver.resolve(existing, "feature/x", ConflictPolicy.INTERACTIVE))

        assert resolution == ConflictResolution.KEEP_EXISTING
        assert not resolution.cleanup_performed
        manager.cleanup.assert_not_awaited()
        assert (existing.workspace_dir / "context.md").exists()

    def test_without_terminal_fails_fast(self, manager, existing):
        resolver, prompt = _resolver(manager, interactive=False)

        with pytest.raises(PathConflictError) as exc_info:
            run_async(resolver.resolve(existing, "feature/x", ConflictPolicy.INTERACTIVE))

        assert exc_info.value.workspace_dir == existing.workspace_dir
        prompt.assert_not_awaited()
        manager.cleanup.assert_not_awaited()


class TestFail:

    def test_raises_path_conflict(self, manager, existing):
        resolver, prompt = _resolver(manager, answer="y")

        with pytest.raises(PathConflictError):
            run_async(resolver.resolve(existing, "feature/x", ConflictPolicy.FAIL))

        prompt.assert_not_awaited()
        manager.cleanup.assert_not_awaited()
