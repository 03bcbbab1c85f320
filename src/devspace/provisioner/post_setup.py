"""Post-setup shell command execution.

Runs a project's post-setup command in the workspace directory once
generation is finished. The command runs under ``sh -c`` with a
wall-clock bound; on timeout the process is killed and
SubprocessTimeoutError is raised. Callers treat every failure here as
non-fatal: the workspace stays usable.
"""

import asyncio
import logging
import re
import shutil
import time
from pathlib import Path
from typing import Optional

from src.devspace.errors import SubprocessTimeoutError
from src.devspace.projects.models import WorkspacePaths
from src.devspace.provisioner.models import PostSetupResult

logger = logging.getLogger(__name__)

DEFAULT_POST_SETUP_TIMEOUT_SECONDS = 180

ENV_FILE_TARGET_NAME = ".env.local"

# A command that cd's into a sub-directory needs the working trees
_WORKTREE_REFERENCE = re.compile(r"cd\s+[a-zA-Z0-9_-]+(\s|&&|$)")


class PostSetupRunner:
    """Runs post-setup commands with a timeout.

    Attributes:
        timeout_seconds: Maximum execution time before the process is killed.
        dry_run: When True, commands are logged and not executed.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_POST_SETUP_TIMEOUT_SECONDS,
        dry_run: bool = False,
    ):
        self.timeout_seconds = timeout_seconds
        self.dry_run = dry_run

    @staticmethod
    def requires_worktrees(command: str) -> bool:
        """Return True if the command changes into a sub-directory."""
        return bool(_WORKTREE_REFERENCE.search(command))

    def copy_env_file(
        self,
        env_file: Optional[Path],
        paths: WorkspacePaths,
    ) -> Optional[Path]:
        """Copy the project's env file into the companion working tree.

        Returns:
            The target path, or None when nothing was copied.
        """
        if env_file is None or paths.companion_path is None:
            return None
        if not env_file.is_file() or not paths.companion_path.is_dir():
            logger.debug(
                "Env file not copied",
                extra={"env_file": str(env_file), "target": str(paths.companion_path)},
            )
            return None

        target = paths.companion_path / ENV_FILE_TARGET_NAME
        if self.dry_run:
            logger.info("[dry run] copy %s to %s", env_file, target)
            return target
        shutil.copyfile(env_file, target)
        logger.debug(
            "Copied env file",
            extra={"env_file": str(env_file), "target": str(target)},
        )
        return target

    async def run(
        self,
        command: str,
        paths: WorkspacePaths,
        worktrees_created: bool = True,
        env_file: Optional[Path] = None,
    ) -> PostSetupResult:
        """Run the post-setup command in the workspace directory.

        Args:
            command: Shell command to execute.
            paths: Resolved workspace layout.
            worktrees_created: Whether the working trees exist.
            env_file: Optional env file copied before the command runs.

        Returns:
            PostSetupResult with captured output.

        Raises:
            SubprocessTimeoutError: If the command exceeds the timeout.
        """
        if not worktrees_created and self.requires_worktrees(command):
            logger.debug(
                "Skipping post-setup command that needs missing working trees",
                extra={"command": command},
            )
            return PostSetupResult(success=True, skipped=True)

        if worktrees_created:
            self.copy_env_file(env_file, paths)

        if self.dry_run:
            logger.info("[dry run] sh -c %s", command)
            return PostSetupResult(success=True, exit_code=0, skipped=True)

        start_time = time.monotonic()
        process = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            command,
            cwd=str(paths.workspace_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            logger.error(
                "Post-setup command timed out after %ss",
                self.timeout_seconds,
                extra={"command": command},
            )
            raise SubprocessTimeoutError(command, self.timeout_seconds) from exc

        exit_code = process.returncode if process.returncode is not None else -1
        result = PostSetupResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_seconds=time.monotonic() - start_time,
        )

        if not result.success:
            logger.warning(
                "Post-setup command exited with %d",
                exit_code,
                extra={"command": command, "stderr": result.stderr[-2000:]},
            )
        return result
