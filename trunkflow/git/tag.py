"""Release tag operations."""

import logging
from pathlib import Path

from packaging.version import InvalidVersion, Version

from trunkflow.action.compensations import DeleteTag
from trunkflow.git.commit import Commit
from trunkflow.git.log import show_commit_range
from trunkflow.git.runner import git_output, run_git

logger = logging.getLogger(__name__)

RELEASE_TAG_PATTERN = "v*.*.*"


def create_tag(repo: Path, name: str, ref: str, message: str | None = None) -> DeleteTag:
    """Tag ref and return the action deleting the tag again."""
    args = ["tag"]
    if message:
        args.extend(["-a", "-m", message])
    args.extend([name, ref])
    git_output(args, repo)
    return DeleteTag(repo, name)


def list_release_tags(repo: Path) -> list[str]:
    """All vX.Y.Z tags, sorted by the version they represent."""
    output = git_output(["tag", "--list", RELEASE_TAG_PATTERN], repo)
    versions = []
    for line in output.splitlines():
        name = line.strip()
        if not name:
            continue
        try:
            versions.append((Version(name[1:]), name))
        except InvalidVersion:
            logger.warning(f"Skipping tag '{name}': not a release version")
    versions.sort()
    return [name for _, name in versions]


def tags_pointing_at(repo: Path, ref: str) -> list[str]:
    """Release tags attached to the commit ref points to."""
    result = run_git(["tag", "--list", RELEASE_TAG_PATTERN, "--points-at", ref], repo)
    if not result.success:
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def commits_since_last_release(repo: Path, branch: str) -> list[Commit]:
    """Commits on branch since the newest release tag, oldest first.

    All of branch when nothing has been released yet.
    """
    tags = list_release_tags(repo)
    if not tags:
        return show_commit_range(repo, branch)
    return show_commit_range(repo, f"{tags[-1]}..{branch}")
