"""Story changes: changes grouped by the story they belong to."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from trunkflow.changes.change import Change, filter_changes_by_source, group_commits_by_change_id
from trunkflow.git.commit import Commit
from trunkflow.git.log import grep_commits
from trunkflow.git.sources import fix_commit_sources
from trunkflow.lib.config import Config

logger = logging.getLogger(__name__)

TITLE_WIDTH = 50

# Both spellings carry the Story-Id, see git.log_parse
STORY_TAG_NAMES = ("Story-Id", "SF-Story-Key")

_ERE_SPECIAL = re.compile(r'([.^$*+?()\[\]{}|\\])')


@dataclass
class StoryChangeGroup:
    story_id: str | None
    changes: list[Change] = field(default_factory=list)

    @property
    def commits(self) -> list[Commit]:
        return [commit for change in self.changes for commit in change.commits]


def group_commits_by_story_id(commits: list[Commit]) -> list[StoryChangeGroup]:
    """Group commits by Story-Id, then by Change-Id within each story.

    Stories keep the order they were first seen. Commits of different stories
    never end up in the same change, even when they share a Change-Id or both
    lack one.
    """
    by_story: dict[str | None, list[Commit]] = {}
    for commit in commits:
        by_story.setdefault(commit.story_id, []).append(commit)
    return [
        StoryChangeGroup(story_id=story_id, changes=group_commits_by_change_id(story_commits))
        for story_id, story_commits in by_story.items()
    ]


def story_changes_from_commits(repo: Path, commits: list[Commit], config: Config) -> list[StoryChangeGroup]:
    """Attribute commit sources, then group by Story-Id and Change-Id."""
    fix_commit_sources(repo, commits, config)
    groups = group_commits_by_story_id(commits)

    include = [re.compile(p) for p in config.changes.include_sources]
    exclude = [re.compile(p) for p in config.changes.exclude_sources]
    if include or exclude:
        groups = [
            StoryChangeGroup(group.story_id, changes)
            for group in groups
            if (changes := filter_changes_by_source(group.changes, include, exclude))
        ]
    return groups


def _ere_escape(value: str) -> str:
    return _ERE_SPECIAL.sub(r'\\\1', value)


def story_id_grep_pattern(tags: list[str]) -> str:
    """Extended regexp matching the Story-Id line of any of the tags."""
    names = "|".join(_ere_escape(name) for name in STORY_TAG_NAMES)
    alternatives = "|".join(_ere_escape(tag) for tag in tags)
    return f"^({names}):[[:blank:]]+({alternatives})[[:blank:]]*$"


def story_tag_spellings(stories: list) -> dict[str, str]:
    """Map every accepted Story-Id spelling, lowercased, to the story's canonical tag."""
    spellings: dict[str, str] = {}
    for story in stories:
        for spelling in (story.tag, *story.tag_aliases):
            spellings.setdefault(spelling.lower(), story.tag)
    return spellings


def story_changes(repo: Path, stories: list, config: Config) -> list[StoryChangeGroup]:
    """Story changes for the given tracker stories, searched across all refs.

    Commit Story-Ids are rewritten to the canonical story tag, so a commit
    tagged with a short alias lands in the same group as one tagged in full.
    """
    if not stories:
        return []

    spellings = story_tag_spellings(stories)
    commits = grep_commits(repo, story_id_grep_pattern(list(spellings)))

    ok_commits = []
    for commit in commits:
        if not commit.story_id:
            logger.warning(
                f"Found story commit {commit.sha}, but failed to parse the Story-Id tag. "
                "Please check that commit manually."
            )
            continue
        tag = spellings.get(commit.story_id.lower())
        if tag is None:
            logger.warning(
                f"Found story commit {commit.sha} tagged '{commit.story_id}', "
                "which matches none of the requested stories. Skipping."
            )
            continue
        commit.story_id = tag
        ok_commits.append(commit)

    return story_changes_from_commits(repo, ok_commits, config)


def sort_story_changes(groups: list[StoryChangeGroup], stories: list) -> list[StoryChangeGroup]:
    """Order groups the way the tracker ordered the stories.

    Groups without a matching story go last, in their current order.
    """
    position = {story.tag: i for i, story in enumerate(stories)}
    return sorted(groups, key=lambda g: position.get(g.story_id, len(position)))


def shorten_title(title: str, width: int = TITLE_WIDTH) -> str:
    if len(title) <= width:
        return title
    return title[:width - 3] + "..."


def format_story_changes(
    groups: list[StoryChangeGroup],
    porcelain: bool = False,
    readable_id: Callable[[str | None], str] | None = None,
) -> str:
    """Render story changes as a table.

    The human-readable form has a header and leaves the story and change
    cells empty when they repeat. Porcelain output is tab-separated, one
    commit per line, every cell filled.
    """
    rows = []
    for group in groups:
        story = readable_id(group.story_id) if readable_id else (group.story_id or "")
        for change in group.changes:
            change_id = change.change_id or ""
            for commit in change.commits:
                rows.append([story, change_id, commit.sha, commit.source,
                             shorten_title(commit.message_title)])
                if not porcelain:
                    story = change_id = ""

    if porcelain:
        return "".join("\t".join(row) + "\n" for row in rows)

    header = ["Story", "Change", "Commit SHA", "Commit Source", "Commit Title"]
    table = [header, ["=" * len(h) for h in header]] + rows
    widths = [max(len(row[i]) for row in table) for i in range(len(header) - 1)]
    lines = []
    for row in table:
        cells = [f"{cell:<{widths[i]}}" for i, cell in enumerate(row[:-1])]
        lines.append("  ".join(cells + [row[-1]]).rstrip())
    return "\n".join(lines) + "\n"
