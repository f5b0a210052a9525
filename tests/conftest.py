"""Shared fixtures: commit factory, fake tracker stories, default config."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from trunkflow.git.commit import Commit
from trunkflow.lib.config import Config
from trunkflow.lib.errors import TrackerError
from trunkflow.modules.base import StoryState

BASE_DATE = datetime(2015, 3, 3, 10, 0, 0, tzinfo=timezone(timedelta(hours=1)))


def _make_commit(sha, source="refs/heads/develop", minutes=0, change_id=None,
                 story_id=None, title=None):
    date = BASE_DATE + timedelta(minutes=minutes)
    title = title or f"Commit {sha}"
    return Commit(
        sha=sha,
        source=source,
        author="Jane Doe <jane@example.com>",
        author_date=date,
        committer="Jane Doe <jane@example.com>",
        commit_date=date,
        message_title=title,
        message=title,
        change_id=change_id,
        story_id=story_id,
    )


@pytest.fixture
def make_commit():
    return _make_commit


class RecordingAction:
    """Action appending its label to a shared log when rolled back."""

    def __init__(self, log: list, label: str, fail: bool = False):
        self.log = log
        self.label = label
        self.fail = fail

    def rollback(self):
        self.log.append(self.label)
        if self.fail:
            raise RuntimeError(f"{self.label} failed")

    def describe(self):
        return f"undo {self.label}"


class FakeStory:
    def __init__(self, number, state=StoryState.TESTED, skip_check=False, log=None, story_type="feature"):
        self.number = number
        self.story_type = story_type
        self.state = state
        self.skip_check = skip_check
        self.log = log if log is not None else []
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def __repr__(self):
        return f"FakeStory(#{self.number})"

    @property
    def readable_id(self):
        return f"#{self.number}"

    @property
    def tag(self):
        return f"acme/widgets#{self.number}"

    @property
    def tag_aliases(self):
        return [f"#{self.number}"]

    @property
    def title(self):
        return f"Story {self.number}"

    @property
    def url(self):
        return f"https://github.com/acme/widgets/issues/{self.number}"

    def _transition(self, name, state):
        self.calls.append(name)
        if name in self.fail_on:
            raise TrackerError(f"{name} failed for #{self.number}")
        previous, self.state = self.state, state
        return RecordingAction(self.log, f"{name} #{self.number} (was {previous})")

    def start(self):
        return self._transition("start", StoryState.BEING_IMPLEMENTED)

    def stage(self):
        return self._transition("stage", StoryState.STAGED)

    def mark_as_implemented(self):
        return self._transition("mark_as_implemented", StoryState.IMPLEMENTED)

    def mark_as_released(self):
        return self._transition("mark_as_released", StoryState.CLOSED)

    def set_state(self, state):
        return self._transition("set_state", state)


class FakeTracker:
    """In-memory IssueTracker. Releases are keyed by base version string."""

    def __init__(self, stories=None, releases=None, log=None):
        self.stories = {s.tag: s for s in (stories or [])}
        self.releases = releases or {}
        self.log = log if log is not None else []
        self.started: list = []

    def list_stories_by_tag(self, tags):
        return [self.stories[tag] for tag in tags if tag in self.stories]

    def release_stories(self, version):
        return list(self.releases.get(version.base_string(), []))

    def start_release(self, version, stories):
        self.started.append((version, list(stories)))
        return RecordingAction(self.log, f"start_release {version}")

    def readable_id(self, tag):
        if not tag:
            return ""
        return "#" + tag.rsplit("#", 1)[-1]


class FakeCodeReviewTool:
    def __init__(self, log=None):
        self.log = log if log is not None else []
        self.finalised: list = []

    def finalise_release(self, version):
        self.finalised.append(version)
        return RecordingAction(self.log, f"finalise_release {version}")


@pytest.fixture
def config(tmp_path):
    return Config(repo=tmp_path)


@pytest.fixture
def repo(tmp_path) -> Path:
    return tmp_path
