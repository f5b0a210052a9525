"""Git branch operations."""

import logging
from dataclasses import dataclass
from pathlib import Path

from trunkflow.action.compensations import DeleteBranch, ResetBranch
from trunkflow.git.runner import git_output, run_git
from trunkflow.lib.errors import GitCommandError, RefNotFoundError, TrunkflowError

logger = logging.getLogger(__name__)


@dataclass
class BranchRef:
    """A branch as seen locally and in its remote.

    Either side may be empty for purely local or purely remote branches.
    """
    name: str = ""
    remote: str = ""
    remote_name: str = ""

    @property
    def local_ref(self) -> str:
        return f"refs/heads/{self.name}" if self.name else ""

    @property
    def remote_ref(self) -> str:
        if not self.remote_name:
            return ""
        return f"refs/remotes/{self.remote}/{self.remote_name}"

    @property
    def full_remote_name(self) -> str:
        return f"{self.remote}/{self.remote_name}"

    @property
    def canonical_name(self) -> str:
        return self.name or self.full_remote_name

    def is_up_to_date(self, repo: Path) -> bool:
        """True when the local and remote refs point to the same commit."""
        if not self.local_ref or not self.remote_ref:
            return True
        return hexsha(repo, self.local_ref) == hexsha(repo, self.remote_ref)


def current_branch(repo: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD."""
    result = run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], repo)
    if result.success:
        return result.stdout.strip() or None
    return None


def ref_exists(repo: Path, ref: str) -> bool:
    """Check if a fully qualified ref exists."""
    return run_git(["show-ref", "--verify", "--quiet", ref], repo).success


def local_branch_exists(repo: Path, branch: str) -> bool:
    return ref_exists(repo, f"refs/heads/{branch}")


def remote_branch_exists(repo: Path, branch: str, remote: str) -> bool:
    return ref_exists(repo, f"refs/remotes/{remote}/{branch}")


def hexsha(repo: Path, ref: str) -> str:
    """Full SHA the ref points to.

    Raises:
        RefNotFoundError: if the ref does not exist
    """
    result = run_git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], repo)
    if not result.success:
        raise RefNotFoundError(ref)
    return result.stdout.strip()


def ensure_branch_not_exists(repo: Path, branch: str, remote: str) -> None:
    if local_branch_exists(repo, branch):
        raise TrunkflowError(f"branch '{branch}' already exists")
    if remote_branch_exists(repo, branch, remote):
        raise TrunkflowError(f"branch '{branch}' already exists in remote '{remote}'")


def ensure_branch_synchronized(repo: Path, branch: str, remote: str) -> None:
    """Raise unless the local branch and its remote counterpart match."""
    ref = BranchRef(name=branch, remote=remote, remote_name=branch)
    if not ref.is_up_to_date(repo):
        raise TrunkflowError(f"branch '{branch}' is not up to date")


def check_or_create_tracking_branch(repo: Path, branch: str, remote: str) -> None:
    """Make sure the local branch exists and is in sync with the remote one.

    A missing local branch is created from the remote branch.
    """
    if local_branch_exists(repo, branch):
        if remote_branch_exists(repo, branch, remote):
            ensure_branch_synchronized(repo, branch, remote)
        return
    if not remote_branch_exists(repo, branch, remote):
        raise RefNotFoundError(f"{remote}/{branch}")
    logger.info(f"Creating local branch '{branch}' from '{remote}/{branch}'")
    git_output(["branch", "--track", branch, f"{remote}/{branch}"], repo)


def create_branch(repo: Path, branch: str, start_point: str) -> DeleteBranch:
    """Create a branch and return the action deleting it again."""
    git_output(["branch", branch, start_point], repo)
    return DeleteBranch(repo, branch)


def delete_branch(repo: Path, branch: str) -> None:
    git_output(["branch", "-D", branch], repo)


def checkout(repo: Path, branch: str) -> None:
    git_output(["checkout", branch], repo)


def create_or_reset_branch(repo: Path, branch: str, target: str) -> ResetBranch | DeleteBranch:
    """Point branch at target, creating it if needed.

    Returns the action restoring the previous state: a reset for an existing
    branch, a deletion for a new one.
    """
    if not local_branch_exists(repo, branch):
        return create_branch(repo, branch, target)

    previous = hexsha(repo, f"refs/heads/{branch}")
    if current_branch(repo) == branch:
        git_output(["reset", "--keep", target], repo)
    else:
        git_output(["branch", "-f", branch, target], repo)
    return ResetBranch(repo, branch, previous)


def ensure_clean_working_tree(repo: Path) -> None:
    result = run_git(["status", "--porcelain", "--untracked-files=no"], repo)
    if not result.success:
        raise GitCommandError(["status", "--porcelain"], result.stderr, result.returncode)
    if result.stdout.strip():
        raise TrunkflowError("the working tree has uncommitted changes")
