"""Subprocess boundary for every git invocation."""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from trunkflow.lib.errors import GitCommandError

logger = logging.getLogger(__name__)

# Never block on a credential prompt; keep messages in English for matching
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C"}


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def run_git(args: list[str], cwd: Path, timeout: int | None = None) -> GitResult:
    """Run `git -C cwd <args>` without a pager.

    Blocks until git exits unless a timeout is given. A non-zero exit is
    reported through the result, not raised. An expired timeout yields
    returncode -1 and timed_out set.

    Raises:
        GitCommandError: if the git executable cannot be found
    """
    cmd = ["git", "--no-pager", "-C", str(cwd)] + args
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, **GIT_ENV},
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"git {args[0]} timed out after {timeout}s")
        return GitResult(-1, "", f"git {args[0]} timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        raise GitCommandError(args, "git executable not found in PATH") from None
    return GitResult(completed.returncode, completed.stdout, completed.stderr)


def git_output(args: list[str], cwd: Path, timeout: int | None = None) -> str:
    """Run a git command and return its stdout.

    Raises:
        GitCommandError: if the command fails or times out
    """
    result = run_git(args, cwd, timeout=timeout)
    if not result.success:
        raise GitCommandError(args, result.stderr, result.returncode)
    return result.stdout


def repository_root(path: Path) -> Path:
    """Top-level directory of the working tree containing path.

    Raises:
        GitCommandError: if path is not inside a git working tree
    """
    return Path(git_output(["rev-parse", "--show-toplevel"], path).strip())
