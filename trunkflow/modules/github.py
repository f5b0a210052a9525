"""
GitHub issue tracker and code review tool, driven through the gh CLI.

Stories are issues labelled with the story label. The story state is encoded
in state labels (see DEFAULT_STATE_LABELS in lib.config); a closed issue is
CLOSED. Release membership is the `release-X.Y.Z` label. Finalising a release
closes the `vX.Y.Z` milestone.
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from trunkflow.action.chain import NOOP, Action
from trunkflow.action.compensations import RevertIssueTrackerTransition
from trunkflow.lib.config import IssueTrackerConfig
from trunkflow.lib.errors import TrackerError
from trunkflow.modules.base import StoryState

logger = logging.getLogger(__name__)

ISSUE_FIELDS = "number,title,state,labels,url"

# Story tag: "owner/name#123", or "#123" for the current repository
TAG_RE = re.compile(r'^(?:([^/\s#]+/[^/\s#]+))?#(\d+)$')


def run_gh(args: list[str], repo: Path, timeout: int | None = None) -> str:
    """Run a gh command in repo and return its stdout.

    Blocks until gh exits unless a timeout is given.

    Raises:
        TrackerError: if gh is missing, fails or times out
    """
    cmd = ["gh"] + args
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            cwd=str(repo),
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise TrackerError(f"gh {args[0]}: timed out after {timeout}s") from None
    except FileNotFoundError:
        raise TrackerError("gh CLI not found. Install from https://cli.github.com/") from None

    if result.returncode != 0:
        raise TrackerError(f"gh {' '.join(args[:2])}: {result.stderr.strip()}")
    return result.stdout


def gh_json(args: list[str], repo: Path) -> Any:
    output = run_gh(args, repo)
    try:
        return json.loads(output) if output.strip() else None
    except json.JSONDecodeError as e:
        raise TrackerError(f"gh {' '.join(args[:2])}: invalid JSON output: {e}") from None


def release_label(version) -> str:
    return f"release-{version.base_string()}"


@dataclass(frozen=True)
class IssueState:
    """Snapshot of the state-carrying parts of an issue."""
    open: bool
    labels: frozenset[str]

    def __str__(self) -> str:
        state = "open" if self.open else "closed"
        return f"{state} [{', '.join(sorted(self.labels))}]"


class GitHubStory:
    def __init__(self, tracker: "GitHubIssueTracker", data: dict):
        self.tracker = tracker
        self.number: int = data["number"]
        self._title: str = data.get("title", "")
        self._url: str = data.get("url", "")
        self.open: bool = data.get("state", "OPEN").upper() == "OPEN"
        self.labels: set[str] = {label["name"] for label in data.get("labels", [])}

    def __repr__(self) -> str:
        return f"GitHubStory(#{self.number})"

    @property
    def config(self) -> IssueTrackerConfig:
        return self.tracker.config

    @property
    def readable_id(self) -> str:
        return f"#{self.number}"

    @property
    def tag(self) -> str:
        return f"{self.tracker.repository}#{self.number}"

    @property
    def tag_aliases(self) -> list[str]:
        return [f"#{self.number}"]

    @property
    def story_type(self) -> str:
        return "issue"

    @property
    def title(self) -> str:
        return self._title

    @property
    def url(self) -> str:
        return self._url

    @property
    def skip_check(self) -> bool:
        return any(label in self.labels for label in self.config.skip_check_labels)

    def _state_label_names(self) -> set[str]:
        return set(self.config.state_labels.values())

    @property
    def state(self) -> StoryState:
        if not self.open:
            return StoryState.CLOSED

        labels = self.config.state_labels
        has = self.labels.__contains__

        if has(labels["rejected"]):
            return StoryState.REJECTED
        if has(labels["accepted"]):
            return StoryState.ACCEPTED
        if has(labels["staged"]):
            return StoryState.STAGED

        reviewed = has(labels["reviewed"]) or has(labels["skip_review"])
        tested = has(labels["passed_testing"]) or has(labels["skip_testing"])
        if reviewed and tested:
            return StoryState.TESTED
        if reviewed:
            return StoryState.REVIEWED
        if tested or has(labels["implemented"]):
            return StoryState.IMPLEMENTED
        if has(labels["being_implemented"]):
            return StoryState.BEING_IMPLEMENTED
        if has(labels["approved"]):
            return StoryState.APPROVED

        if self.labels & self._state_label_names():
            return StoryState.INVALID
        return StoryState.NEW

    def snapshot(self) -> IssueState:
        return IssueState(open=self.open, labels=frozenset(self.labels & self._state_label_names()))

    def _target(self, state: StoryState) -> IssueState:
        labels = self.config.state_labels
        targets = {
            StoryState.NEW: [],
            StoryState.APPROVED: [labels["approved"]],
            StoryState.BEING_IMPLEMENTED: [labels["being_implemented"]],
            StoryState.IMPLEMENTED: [labels["implemented"]],
            StoryState.REVIEWED: [labels["reviewed"]],
            StoryState.TESTED: [labels["reviewed"], labels["passed_testing"]],
            StoryState.STAGED: [labels["staged"]],
            StoryState.ACCEPTED: [labels["accepted"]],
            StoryState.REJECTED: [labels["rejected"]],
        }
        if state is StoryState.CLOSED:
            # Closing keeps the labels the story had
            return IssueState(open=False, labels=self.snapshot().labels)
        if state not in targets:
            raise TrackerError(f"issue {self.readable_id}: cannot set state '{state}' on GitHub")
        return IssueState(open=True, labels=frozenset(targets[state]))

    def _apply(self, target: IssueState) -> None:
        current = self.snapshot()
        remove = sorted(current.labels - target.labels)
        add = sorted(target.labels - current.labels)
        repo_args = self.tracker.repo_args()

        if remove or add:
            args = ["issue", "edit", str(self.number)] + repo_args
            if add:
                args += ["--add-label", ",".join(add)]
            if remove:
                args += ["--remove-label", ",".join(remove)]
            run_gh(args, self.tracker.repo)
            self.labels = (self.labels - set(remove)) | set(add)

        if current.open and not target.open:
            run_gh(["issue", "close", str(self.number)] + repo_args, self.tracker.repo)
        elif target.open and not current.open:
            run_gh(["issue", "reopen", str(self.number)] + repo_args, self.tracker.repo)
        self.open = target.open

    def set_state(self, state: StoryState | IssueState) -> Action:
        previous = self.snapshot()
        target = state if isinstance(state, IssueState) else self._target(state)
        logger.info(f"Run: Set GitHub issue {self.readable_id} to '{state}'")
        self._apply(target)
        return RevertIssueTrackerTransition(self, previous)

    def start(self) -> Action:
        return self.set_state(StoryState.BEING_IMPLEMENTED)

    def mark_as_implemented(self) -> Action:
        return self.set_state(StoryState.IMPLEMENTED)

    def stage(self) -> Action:
        return self.set_state(StoryState.STAGED)

    def mark_as_released(self) -> Action:
        return self.set_state(StoryState.CLOSED)

    def add_label(self, label: str) -> None:
        run_gh(["issue", "edit", str(self.number)] + self.tracker.repo_args()
               + ["--add-label", label], self.tracker.repo)
        self.labels.add(label)

    def remove_label(self, label: str) -> None:
        run_gh(["issue", "edit", str(self.number)] + self.tracker.repo_args()
               + ["--remove-label", label], self.tracker.repo)
        self.labels.discard(label)


@dataclass(frozen=True)
class RemoveReleaseLabel:
    """Undo GitHubIssueTracker.start_release()."""
    stories: tuple
    label: str

    def rollback(self) -> None:
        logger.warning(f"Rollback: Remove label '{self.label}' from {len(self.stories)} issue(s)")
        for story in reversed(self.stories):
            story.remove_label(self.label)

    def describe(self) -> str:
        return f"remove label '{self.label}' from {len(self.stories)} issue(s)"


class GitHubIssueTracker:
    def __init__(self, repo: Path, config: IssueTrackerConfig):
        self.repo = repo
        self.config = config
        self._repository = config.repository

    @property
    def repository(self) -> str:
        """owner/name of the GitHub repository."""
        if not self._repository:
            data = gh_json(["repo", "view", "--json", "nameWithOwner"], self.repo)
            self._repository = data["nameWithOwner"]
        return self._repository

    def repo_args(self) -> list[str]:
        return ["--repo", self.config.repository] if self.config.repository else []

    def _issue(self, number: int) -> GitHubStory:
        data = gh_json(["issue", "view", str(number), "--json", ISSUE_FIELDS] + self.repo_args(), self.repo)
        return GitHubStory(self, data)

    def _search(self, *labels: str) -> list[GitHubStory]:
        args = ["issue", "list", "--state", "all", "--limit", "1000", "--json", ISSUE_FIELDS]
        for label in labels:
            args += ["--label", label]
        data = gh_json(args + self.repo_args(), self.repo) or []
        stories = [GitHubStory(self, item) for item in data]
        stories.sort(key=lambda s: s.number)
        return stories

    def list_stories_by_tag(self, tags: list[str]) -> list[GitHubStory]:
        stories = []
        seen: set[int] = set()
        for tag in tags:
            match = TAG_RE.match(tag)
            if not match:
                logger.warning(f"Skipping Story-Id '{tag}': not a GitHub issue reference")
                continue
            repository, number = match.group(1), int(match.group(2))
            if repository and repository.lower() != self.repository.lower():
                logger.warning(f"Skipping Story-Id '{tag}': issue belongs to another repository")
                continue
            if number in seen:
                continue
            seen.add(number)
            stories.append(self._issue(number))
        return stories

    def release_stories(self, version) -> list[GitHubStory]:
        return self._search(self.config.story_label, release_label(version))

    def start_release(self, version, stories: list[GitHubStory]) -> Action:
        label = release_label(version)
        if not stories:
            return NOOP
        run_gh(["label", "create", label, "--force",
                "--description", f"Stories of release {version.base_string()}"] + self.repo_args(),
               self.repo)

        labelled: list[GitHubStory] = []
        try:
            for story in stories:
                logger.info(f"Run: Label issue {story.readable_id} with '{label}'")
                story.add_label(label)
                labelled.append(story)
        except TrackerError:
            RemoveReleaseLabel(tuple(labelled), label).rollback()
            raise
        return RemoveReleaseLabel(tuple(labelled), label)

    def readable_id(self, tag: str | None) -> str:
        if not tag:
            return ""
        match = TAG_RE.match(tag)
        return f"#{match.group(2)}" if match else tag


@dataclass(frozen=True)
class ReopenMilestone:
    tool: "GitHubCodeReviewTool"
    number: int
    title: str

    def rollback(self) -> None:
        logger.warning(f"Rollback: Reopen milestone '{self.title}'")
        self.tool.set_milestone_state(self.number, "open")

    def describe(self) -> str:
        return f"reopen milestone '{self.title}'"


class GitHubCodeReviewTool:
    """Closes the release milestone when a release is finalised."""

    def __init__(self, repo: Path, config: IssueTrackerConfig):
        self.repo = repo
        self.config = config

    def _api_path(self, suffix: str) -> str:
        # gh resolves {owner}/{repo} from the current clone
        repository = self.config.repository or "{owner}/{repo}"
        return f"repos/{repository}/{suffix}"

    def set_milestone_state(self, number: int, state: str) -> None:
        run_gh(["api", "-X", "PATCH", self._api_path(f"milestones/{number}"), "-f", f"state={state}"],
               self.repo)

    def finalise_release(self, version) -> Action:
        title = version.release_tag()
        milestones = gh_json(["api", self._api_path("milestones?state=open&per_page=100")], self.repo) or []
        milestone = next((m for m in milestones if m.get("title") == title), None)
        if milestone is None:
            logger.warning(f"Milestone '{title}' not found, nothing to close")
            return NOOP

        logger.info(f"Run: Close milestone '{title}'")
        self.set_milestone_state(milestone["number"], "closed")
        return ReopenMilestone(self, milestone["number"], title)
