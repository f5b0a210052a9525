"""
Interfaces of the external services a release workflow talks to.

An IssueTracker knows the stories of a release; a CodeReviewTool is told when
a release is finalised. Every mutating call returns the Action undoing it so
the workflows can push it onto their ActionChain.
"""

from enum import Enum
from typing import Any, Protocol

from trunkflow.action.chain import Action


class StoryState(Enum):
    """Tracker-independent story lifecycle."""
    NEW = "new"
    APPROVED = "approved"
    BEING_IMPLEMENTED = "being implemented"
    IMPLEMENTED = "implemented"
    REVIEWED = "reviewed"
    BEING_TESTED = "being tested"
    TESTED = "tested"
    STAGED = "staged"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CLOSED = "closed"
    INVALID = "invalid"

    def __str__(self) -> str:
        return self.value


# States in which a story may be shipped to the staging environment
STAGEABLE_STATES = frozenset({
    StoryState.TESTED,
    StoryState.STAGED,
    StoryState.ACCEPTED,
    StoryState.CLOSED,
})

# States in which a story may be deployed to production
RELEASABLE_STATES = frozenset({
    StoryState.ACCEPTED,
    StoryState.CLOSED,
})


class Story(Protocol):
    @property
    def state(self) -> StoryState: ...

    @property
    def readable_id(self) -> str: ...

    @property
    def tag(self) -> str:
        """Value of the Story-Id commit message tag referring to this story."""
        ...

    @property
    def tag_aliases(self) -> list[str]:
        """Other Story-Id values the tracker resolves to this story."""
        ...

    @property
    def story_type(self) -> str:
        """Release notes section the story is listed under."""
        ...

    @property
    def title(self) -> str: ...

    @property
    def url(self) -> str: ...

    @property
    def skip_check(self) -> bool:
        """True for stories excluded from release state checks."""
        ...

    def start(self) -> Action: ...

    def stage(self) -> Action: ...

    def mark_as_implemented(self) -> Action: ...

    def mark_as_released(self) -> Action: ...

    def set_state(self, state: Any) -> Action:
        """Move the story to state.

        Accepts a StoryState or a tracker-specific snapshot previously stored
        in a RevertIssueTrackerTransition.
        """
        ...


class IssueTracker(Protocol):
    def list_stories_by_tag(self, tags: list[str]) -> list[Story]: ...

    def release_stories(self, version) -> list[Story]:
        """Stories assigned to the release with the given version."""
        ...

    def start_release(self, version, stories: list[Story]) -> Action:
        """Assign stories to the release with the given version."""
        ...

    def readable_id(self, tag: str | None) -> str:
        """Human-readable story id for a Story-Id tag value."""
        ...


class CodeReviewTool(Protocol):
    def finalise_release(self, version) -> Action: ...
