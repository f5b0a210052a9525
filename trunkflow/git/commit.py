"""Commit records parsed from git log output."""

from dataclasses import dataclass
from datetime import datetime

from trunkflow.lib.constants import STORY_ID_UNASSIGNED

# Matches git's --pretty=fuller / --date=default rendering
DATE_FORMAT = "%a %b %d %H:%M:%S %Y %z"


@dataclass
class Commit:
    """A single commit as printed by `git log --source --pretty=fuller`."""
    sha: str
    source: str
    author: str
    author_date: datetime
    committer: str
    commit_date: datetime
    message_title: str
    message: str
    merge: str | None = None  # Parent SHAs, merge commits only
    change_id: str | None = None
    story_id: str | None = None

    @property
    def is_merge(self) -> bool:
        return self.merge is not None


def story_ids(commits: list[Commit]) -> list[str]:
    """Return the unique Story-Id tags found in the commits, in order of appearance."""
    seen: dict[str, None] = {}
    for commit in commits:
        if commit.story_id and commit.story_id != STORY_ID_UNASSIGNED:
            seen.setdefault(commit.story_id, None)
    return list(seen)


def format_date(value: datetime) -> str:
    # git does not zero-pad the day of month
    return f"{value:%a %b} {value.day} {value:%H:%M:%S %Y %z}"


def format_commit(commit: Commit, indent: int = 4) -> str:
    """Render a commit the way `git log --source --pretty=fuller` prints it."""
    lines = [f"commit {commit.sha} {commit.source}"]
    if commit.merge is not None:
        lines.append(f"Merge: {commit.merge}")
    lines.extend([
        f"Author:     {commit.author}",
        f"AuthorDate: {format_date(commit.author_date)}",
        f"Commit:     {commit.committer}",
        f"CommitDate: {format_date(commit.commit_date)}",
        "",
    ])
    pad = " " * indent
    for line in commit.message.splitlines():
        lines.append(pad + line if line else "")
    lines.append("")
    return "\n".join(lines)
