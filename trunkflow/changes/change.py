"""Grouping of commits into changes by their Change-Id tag."""

import bisect
import re
from dataclasses import dataclass, field

from trunkflow.git.commit import Commit


@dataclass
class Change:
    """All commits carrying one Change-Id, sorted by commit date."""
    change_id: str | None
    commits: list[Commit] = field(default_factory=list)

    @property
    def initial_commit(self) -> Commit:
        return self.commits[0]

    def add_commit(self, commit: Commit) -> None:
        # Equal dates go after the existing ones, keeping discovery order
        bisect.insort_right(self.commits, commit, key=lambda c: c.commit_date)


def group_commits_by_change_id(commits: list[Commit]) -> list[Change]:
    """Group commits into changes, ordered by each change's earliest commit.

    Commits without a Change-Id share one group. Ties between changes keep
    the order in which they were first seen.
    """
    changes: list[Change] = []
    for commit in commits:
        for change in changes:
            if change.change_id == commit.change_id:
                change.add_commit(commit)
                break
        else:
            changes.append(Change(change_id=commit.change_id, commits=[commit]))

    changes.sort(key=lambda change: change.initial_commit.commit_date)
    return changes


def filter_changes_by_source(
    changes: list[Change],
    include: list[re.Pattern] | None = None,
    exclude: list[re.Pattern] | None = None,
) -> list[Change]:
    """Keep changes with a commit source matching include and none matching exclude.

    An empty include list matches every change.
    """
    include = include or []
    exclude = exclude or []

    def matches(change: Change, patterns: list[re.Pattern]) -> bool:
        return any(p.search(c.source) for c in change.commits for p in patterns)

    return [
        change for change in changes
        if (not include or matches(change, include)) and not matches(change, exclude)
    ]
