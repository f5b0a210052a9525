"""Compensation descriptors pushed onto an ActionChain by the workflow steps."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from trunkflow.git.runner import git_output, run_git

logger = logging.getLogger(__name__)


def _is_checked_out(repo: Path, name: str) -> bool:
    result = run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], repo)
    return result.success and result.stdout.strip() == name


def _local_branch_exists(repo: Path, name: str) -> bool:
    return run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], repo).success


@dataclass(frozen=True)
class ResetBranch:
    """Move a branch back to the commit it pointed to before the step."""
    repo: Path
    name: str
    previous_sha: str

    def rollback(self) -> None:
        if _is_checked_out(self.repo, self.name):
            git_output(["reset", "--keep", self.previous_sha], self.repo)
        else:
            git_output(["branch", "-f", self.name, self.previous_sha], self.repo)

    def describe(self) -> str:
        return f"reset branch '{self.name}' to {self.previous_sha[:12]}"


@dataclass(frozen=True)
class DeleteBranch:
    """Remove a branch created by the step."""
    repo: Path
    name: str

    def rollback(self) -> None:
        git_output(["branch", "-D", self.name], self.repo)

    def describe(self) -> str:
        return f"delete branch '{self.name}'"


@dataclass(frozen=True)
class RecreateBranch:
    """Restore a deleted branch from start_point, usually its remote counterpart.

    Nothing happens when the branch already exists again; an aborted push can
    leave it recreated behind our back.
    """
    repo: Path
    name: str
    start_point: str

    def rollback(self) -> None:
        if _local_branch_exists(self.repo, self.name):
            return
        git_output(["branch", self.name, self.start_point], self.repo)

    def describe(self) -> str:
        return f"recreate branch '{self.name}' from '{self.start_point}'"


@dataclass(frozen=True)
class DeleteTag:
    repo: Path
    name: str

    def rollback(self) -> None:
        git_output(["tag", "-d", self.name], self.repo)

    def describe(self) -> str:
        return f"delete tag '{self.name}'"


@dataclass(frozen=True)
class RevertIssueTrackerTransition:
    """Put a story back into the state it had before the step."""
    story: Any = field(compare=False)
    from_state: str

    def rollback(self) -> None:
        logger.warning(f"Rollback: Set story {self.story.readable_id} back to '{self.from_state}'")
        self.story.set_state(self.from_state)

    def describe(self) -> str:
        return f"set story {self.story.readable_id} back to '{self.from_state}'"


@dataclass(frozen=True)
class ReportOnly:
    """Marker for a step that cannot be undone automatically."""
    task: str
    message: str

    def rollback(self) -> None:
        logger.warning(f"Cannot undo '{self.task}': {self.message}")

    def describe(self) -> str:
        return f"manual: {self.message}"
