"""Async git command execution.

Runs git as an async subprocess with a per-invocation timeout and
returns stdout, stderr and the exit status. Non-zero exits raise
GitCommandError carrying stderr and its GitErrorKind classification.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Union

from src.devspace.git.errors import GitErrorKind, classify_git_error

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT_SECONDS = 120


@dataclass
class GitResult:
    """Output of a git invocation.

    Attributes:
        stdout: Captured standard output, stripped.
        stderr: Captured standard error, stripped.
        exit_code: Process exit code.
    """

    stdout: str
    stderr: str
    exit_code: int


class GitCommandError(Exception):
    """Raised when a git invocation fails.

    Attributes:
        args_list: The git arguments (without the leading "git").
        stderr: Error output of the command.
        exit_code: Exit status, -1 for timeouts and OS errors.
    """

    def __init__(self, args: Sequence[str], stderr: str, exit_code: int = -1):
        self.args_list = list(args)
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(f"git {' '.join(self.args_list)} failed: {stderr}")

    @property
    def kind(self) -> GitErrorKind:
        return classify_git_error(self.stderr)


class GitCommandRunner:
    """Executes git subcommands against a repository path.

    Attributes:
        timeout_seconds: Wall-clock bound for each invocation.
        dry_run: When True, mutating commands are logged and not executed.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_GIT_TIMEOUT_SECONDS,
        dry_run: bool = False,
    ):
        self.timeout_seconds = timeout_seconds
        self.dry_run = dry_run

    async def run(
        self,
        args: Sequence[str],
        cwd: Union[str, Path],
        mutating: bool = True,
    ) -> GitResult:
        """Run ``git <args>`` in cwd.

        Args:
            args: Arguments passed to git.
            cwd: Working directory (the repository path).
            mutating: Whether the command changes repository state. In dry-run
                      mode mutating commands are skipped.

        Returns:
            GitResult for a zero exit status.

        Raises:
            GitCommandError: On non-zero exit, timeout, or OS error.
        """
        if self.dry_run and mutating:
            logger.info(
                "[dry run] git %s",
                " ".join(args),
                extra={"cwd": str(cwd)},
            )
            return GitResult(stdout="", stderr="", exit_code=0)

        logger.debug("git %s", " ".join(args), extra={"cwd": str(cwd)})

        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GitCommandError(args, f"Failed to execute git: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GitCommandError(
                args, f"git timed out after {self.timeout_seconds}s"
            ) from exc

        result = GitResult(
            stdout=stdout.decode("utf-8", errors="replace").strip(),
            stderr=stderr.decode("utf-8", errors="replace").strip(),
            exit_code=process.returncode if process.returncode is not None else -1,
        )

        if result.exit_code != 0:
            raise GitCommandError(args, result.stderr, result.exit_code)

        return result
