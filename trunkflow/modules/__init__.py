"""Issue tracker and code review tool modules."""

from trunkflow.lib.config import Config
from trunkflow.lib.errors import ConfigError
from trunkflow.modules.base import (
    CodeReviewTool,
    IssueTracker,
    RELEASABLE_STATES,
    STAGEABLE_STATES,
    Story,
    StoryState,
)
from trunkflow.modules.github import GitHubCodeReviewTool, GitHubIssueTracker


def get_issue_tracker(config: Config) -> IssueTracker:
    module = config.issue_tracker.module
    if module == "github":
        return GitHubIssueTracker(config.repo, config.issue_tracker)
    raise ConfigError(f"unknown issue tracker module: {module}")


def get_code_review_tool(config: Config) -> CodeReviewTool:
    module = config.issue_tracker.module
    if module == "github":
        return GitHubCodeReviewTool(config.repo, config.issue_tracker)
    raise ConfigError(f"unknown code review module: {module}")


__all__ = [
    "CodeReviewTool",
    "IssueTracker",
    "RELEASABLE_STATES",
    "STAGEABLE_STATES",
    "Story",
    "StoryState",
    "get_issue_tracker",
    "get_code_review_tool",
]
