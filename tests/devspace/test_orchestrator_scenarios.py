"""End-to-end provisioning scenarios against real git repositories.

Each test builds a throwaway source tree with a local repository and a
configuration file, then drives provision()/teardown() from main.
"""

import asyncio
import shutil
import subprocess

import pytest

from src.devspace.config import DevspaceSettings
from src.devspace.errors import PathConflictError, VersionControlFatalError
from src.devspace.git.runner import GitCommandError, GitCommandRunner
from src.devspace.main import provision, teardown
from src.devspace.provisioner.models import ConflictPolicy


pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not available")


def run_async(coro):
    return asyncio.run(coro)


def git(*args, cwd):
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout.strip()


def init_repo(path):
    path.mkdir(parents=True)
    git("init", "-q", cwd=path)
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=path)
    git(
        "-c", "user.name=Dev",
        "-c", "user.email=dev@example.com",
        "commit", "-q", "--allow-empty", "-m", "initial",
        cwd=path,
    )


CONFIG = """
global:
  src_dir: {src_dir}
  workspace_base: workspaces
projects:
  widgets:
    name: Widgets
    repo: {repo}
    post-init: echo ready > post-setup.txt
"""


@pytest.fixture
def src_dir(tmp_path):
    path = tmp_path / "src"
    path.mkdir()
    return path


@pytest.fixture
def repo(src_dir):
    path = src_dir / "widgets"
    init_repo(path)
    return path


@pytest.fixture
def settings(tmp_path, src_dir, repo, monkeypatch):
    for name in ("GITHUB_TOKEN", "DEVSPACE_GITHUB_TOKEN", "DEVSPACE_DRY_RUN"):
        monkeypatch.delenv(name, raising=False)
    config = tmp_path / "devspace.yaml"
    config.write_text(CONFIG.format(src_dir=src_dir, repo=repo))
    return DevspaceSettings(config_path=str(config), config_poll_interval_seconds=60)


@pytest.fixture
def workspace_dir(src_dir):
    return src_dir / "workspaces" / "widgets" / "feature_x"


def branches(repo):
    return git("branch", "--format=%(refname:short)", cwd=repo).splitlines()


class TestProvision:

    def test_fresh_workspace(self, settings, repo, workspace_dir):
        outcome = run_async(provision("widgets", "feature/x", settings=settings))

        assert outcome.worktrees_created
        assert not outcome.cleanup_performed
        assert (workspace_dir / "widgets" / ".git").is_file()
        assert "feature/x" in branches(repo)
        assert (workspace_dir / "post-setup.txt").read_text() == "ready\n"
        assert outcome.post_setup.success

    def test_lookup_by_case_insensitive_key(self, settings, workspace_dir):
        run_async(provision("WIDGETS", "feature/x", settings=settings))
        assert workspace_dir.is_dir()

    def test_silent_rerun_replaces_workspace(self, settings, repo, workspace_dir):
        run_async(provision("widgets", "feature/x", settings=settings))
        (workspace_dir / "stale-marker").write_text("old")

        outcome = run_async(
            provision("widgets", "feature/x", policy=ConflictPolicy.SILENT, settings=settings)
        )

        assert outcome.cleanup_performed
        assert outcome.worktrees_created
        assert not (workspace_dir / "stale-marker").exists()
        assert (workspace_dir / "widgets" / ".git").is_file()

    def test_fail_policy_leaves_existing_workspace(self, settings, workspace_dir):
        run_async(provision("widgets", "feature/x", settings=settings))
        (workspace_dir / "notes.md").write_text("keep me")

        with pytest.raises(PathConflictError):
            run_async(
                provision("widgets", "feature/x", policy=ConflictPolicy.FAIL, settings=settings)
            )

        assert (workspace_dir / "notes.md").read_text() == "keep me"

    def test_existing_branch_is_checked_out(self, settings, repo, workspace_dir):
        git("branch", "feature/x", cwd=repo)

        outcome = run_async(provision("widgets", "feature/x", settings=settings))

        assert outcome.worktrees_created
        head = git("rev-parse", "--abbrev-ref", "HEAD", cwd=workspace_dir / "widgets")
        assert head == "feature/x"

    def test_non_repository_source_falls_back(self, tmp_path, src_dir, monkeypatch):
        for name in ("GITHUB_TOKEN", "DEVSPACE_GITHUB_TOKEN", "DEVSPACE_DRY_RUN"):
            monkeypatch.delenv(name, raising=False)
        plain = src_dir / "plain"
        plain.mkdir()
        config = tmp_path / "plain.yaml"
        config.write_text(
            "global:\n"
            f"  src_dir: {src_dir}\n"
            "projects:\n"
            "  plain:\n"
            "    name: Plain\n"
            f"    repo: {plain}\n"
        )
        settings = DevspaceSettings(config_path=str(config), config_poll_interval_seconds=60)

        outcome = run_async(provision("plain", "feature/x", settings=settings))

        assert not outcome.worktrees_created
        assert outcome.worktree_setup.fallback
        assert (src_dir / "workspaces" / "plain" / "feature_x").is_dir()

    def test_fatal_git_failure_removes_workspace(self, settings, workspace_dir):
        original = GitCommandRunner.run

        async def disk_full(self, args, cwd, mutating=True):
            if list(args[:2]) == ["worktree", "add"]:
                raise GitCommandError(
                    list(args), "fatal: write error: No space left on device", 128
                )
            return await original(self, args, cwd, mutating=mutating)

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(GitCommandRunner, "run", disk_full)
            with pytest.raises(VersionControlFatalError):
                run_async(provision("widgets", "feature/x", settings=settings))

        assert not workspace_dir.exists()


class TestRollback:

    def test_pre_existing_branch_survives_failed_generation(self, settings, repo, workspace_dir):
        git("checkout", "-q", "-b", "feature/x", cwd=repo)
        git(
            "-c", "user.name=Dev",
            "-c", "user.email=dev@example.com",
            "commit", "-q", "--allow-empty", "-m", "work in progress",
            cwd=repo,
        )
        tip = git("rev-parse", "feature/x", cwd=repo)
        git("checkout", "-q", "main", cwd=repo)

        async def failing_generator(request):
            raise RuntimeError("template rendering failed")

        with pytest.raises(RuntimeError, match="template rendering failed"):
            run_async(
                provision(
                    "widgets", "feature/x", settings=settings, generator=failing_generator
                )
            )

        assert not workspace_dir.exists()
        assert "feature/x" in branches(repo)
        assert git("rev-parse", "feature/x", cwd=repo) == tip

    def test_branch_created_by_failed_attempt_is_removed(self, settings, repo, workspace_dir):
        async def failing_generator(request):
            raise RuntimeError("template rendering failed")

        with pytest.raises(RuntimeError):
            run_async(
                provision(
                    "widgets", "feature/x", settings=settings, generator=failing_generator
                )
            )

        assert not workspace_dir.exists()
        assert branches(repo) == ["main"]


class TestTeardown:

    def test_removes_workspace_and_branch(self, settings, repo, workspace_dir):
        run_async(provision("widgets", "feature/x", settings=settings))

        assert run_async(teardown("widgets", "feature/x", settings=settings))

        assert not workspace_dir.exists()
        assert "feature/x" not in branches(repo)
        assert git("worktree", "list", "--porcelain", cwd=repo).count("worktree ") == 1

    def test_teardown_of_missing_workspace(self, settings, workspace_dir):
        assert run_async(teardown("widgets", "feature/x", settings=settings))
        assert not workspace_dir.exists()
