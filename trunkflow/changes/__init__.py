"""Changes and story changes built from commit history."""

from trunkflow.changes.change import (
    Change,
    group_commits_by_change_id,
    filter_changes_by_source,
)
from trunkflow.changes.story import (
    StoryChangeGroup,
    group_commits_by_story_id,
    story_changes,
    story_changes_from_commits,
    sort_story_changes,
    format_story_changes,
)
from trunkflow.changes.planner import (
    changes_to_cherry_pick,
    ensure_trunk_reachable,
    commits_to_cherry_pick,
    release_changes_to_cherry_pick,
)

__all__ = [
    # change
    "Change",
    "group_commits_by_change_id",
    "filter_changes_by_source",
    # story
    "StoryChangeGroup",
    "group_commits_by_story_id",
    "story_changes",
    "story_changes_from_commits",
    "sort_story_changes",
    "format_story_changes",
    # planner
    "changes_to_cherry_pick",
    "ensure_trunk_reachable",
    "commits_to_cherry_pick",
    "release_changes_to_cherry_pick",
]
