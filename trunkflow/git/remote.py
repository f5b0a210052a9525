"""Git remote operations."""

from pathlib import Path

from trunkflow.git.runner import git_output


def update_remotes(repo: Path, *remotes: str) -> None:
    """Fetch the given remotes and prune stale remote branches."""
    git_output(["remote", "update", "--prune", *remotes], repo)


def push(repo: Path, remote: str, *refspecs: str, force: bool = False) -> None:
    """Push refspecs to remote.

    Refspecs follow git syntax, so ":branch" deletes the remote branch.
    """
    args = ["push"]
    if force:
        args.append("-f")
    args.append(remote)
    args.extend(refspecs)
    git_output(args, repo)


def cherry_pick(repo: Path, *shas: str) -> None:
    """Cherry-pick the commits onto the current branch, in the given order."""
    if not shas:
        return
    git_output(["cherry-pick", *shas], repo)
