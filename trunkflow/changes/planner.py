"""
Cherry-pick planning.

A change is present on a branch iff any of its commits is reachable from it:
rebasing or cherry-picking gives a change new SHAs, but the shared Change-Id
means one surviving commit is enough.
"""

import logging
from pathlib import Path

from trunkflow.changes.change import Change
from trunkflow.changes.story import StoryChangeGroup
from trunkflow.git.commit import Commit
from trunkflow.git.log import reachable_shas
from trunkflow.lib.config import Config
from trunkflow.lib.errors import ReachabilityInconsistency

logger = logging.getLogger(__name__)


def is_present(change: Change, reachable: set[str]) -> bool:
    return any(commit.sha in reachable for commit in change.commits)


def changes_to_cherry_pick(groups: list[StoryChangeGroup], reachable: set[str]) -> list[StoryChangeGroup]:
    """Story groups reduced to their changes missing from the reachable set.

    Fully present groups are dropped.
    """
    planned = []
    for group in groups:
        missing = [change for change in group.changes if not is_present(change, reachable)]
        if missing:
            planned.append(StoryChangeGroup(story_id=group.story_id, changes=missing))
    return planned


def ensure_trunk_reachable(groups: list[StoryChangeGroup], trunk_ref: str) -> None:
    """Reject changes that have no commit sourced from trunk_ref.

    Raises:
        ReachabilityInconsistency: listing every offending change, grouped by story
    """
    offending = []
    for group in groups:
        bad = [
            change for change in group.changes
            if not any(commit.source == trunk_ref for commit in change.commits)
        ]
        if bad:
            offending.append(StoryChangeGroup(story_id=group.story_id, changes=bad))

    if offending:
        raise ReachabilityInconsistency(offending, trunk_ref)


def commits_to_cherry_pick(trunk_commits: list[Commit], groups: list[StoryChangeGroup]) -> list[str]:
    """SHAs of the trunk commits belonging to the planned changes, oldest first."""
    wanted = {commit.sha for group in groups for commit in group.commits}
    return [commit.sha for commit in trunk_commits if commit.sha in wanted]


def release_changes_to_cherry_pick(
    repo: Path,
    groups: list[StoryChangeGroup],
    config: Config,
) -> list[StoryChangeGroup]:
    """Story changes missing from the release branch."""
    reachable = reachable_shas(repo, config.git.release)
    logger.debug(f"{len(reachable)} commit(s) reachable from '{config.git.release}'")
    return changes_to_cherry_pick(groups, reachable)
