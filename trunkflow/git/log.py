"""Commit queries returning parsed Commit records."""

from pathlib import Path

from trunkflow.git.commit import Commit
from trunkflow.git.log_parse import parse_commits
from trunkflow.git.runner import git_output

# --source is only honoured by the default (non --pretty=format:) output
LOG_FORMAT_ARGS = ["--source", "--abbrev-commit", "--pretty=fuller"]


def grep_commits(repo: Path, pattern: str, *revisions: str) -> list[Commit]:
    """Commits whose message matches the case-insensitive extended regexp.

    Searches all refs unless revisions are given.
    """
    args = ["log", *LOG_FORMAT_ARGS, "--extended-regexp", "--regexp-ignore-case",
            f"--grep={pattern}"]
    args.extend(revisions or ["--all"])
    return parse_commits(git_output(args, repo))


def show_commits(repo: Path, *revisions: str) -> list[Commit]:
    """The given commits, as printed by `git show`."""
    if not revisions:
        return []
    output = git_output(["show", *LOG_FORMAT_ARGS, *revisions], repo)
    return parse_commits(output)


def show_commit_range(repo: Path, revision_range: str) -> list[Commit]:
    """Commits in a revision range (e.g. "develop..release"), oldest first."""
    output = git_output(["log", *LOG_FORMAT_ARGS, revision_range], repo)
    return parse_commits(output)


def reachable_shas(repo: Path, ref: str) -> set[str]:
    """Abbreviated SHAs of every commit reachable from ref."""
    return {commit.sha for commit in show_commit_range(repo, ref)}
