"""
tflow release stage - Move the running release to the staging branch.

The release branch is collapsed into the staging branch: staging is reset to
release, release is deleted, the version is bumped to the stage suffix, the
release is tagged and everything is pushed.
"""

import logging
from dataclasses import dataclass, field

from trunkflow.action.compensations import RecreateBranch, ReportOnly
from trunkflow.changes.planner import release_changes_to_cherry_pick
from trunkflow.changes.story import format_story_changes, sort_story_changes, story_changes
from trunkflow.git.branch import (
    check_or_create_tracking_branch,
    create_or_reset_branch,
    current_branch,
    delete_branch,
    hexsha,
)
from trunkflow.git.remote import push, update_remotes
from trunkflow.git.tag import create_tag
from trunkflow.lib import prompt
from trunkflow.lib.config import Config
from trunkflow.lib.errors import TaskError, TrunkflowError
from trunkflow.lib.version import Version, read_from_branch, set_for_branch, stage_version
from trunkflow.modules import get_code_review_tool, get_issue_tracker
from trunkflow.modules.base import STAGEABLE_STATES, CodeReviewTool, IssueTracker, Story, StoryState
from trunkflow.workflow.fsm import STAGE_STATES
from trunkflow.workflow.tasks import ReleaseRun

logger = logging.getLogger(__name__)


@dataclass
class StageOptions:
    skip_fetch: bool = False
    yes: bool = False


@dataclass
class StageResult:
    version: Version
    tag: str
    stories: list = field(default_factory=list)


def unstageable_stories(stories: list[Story]) -> list[Story]:
    """Stories blocking the release from being staged."""
    return [
        story for story in stories
        if story.state not in STAGEABLE_STATES and not story.skip_check
    ]


def format_story_states(stories: list[Story]) -> str:
    lines = [f"{'STORY':<12} {'STATE':<20} URL"]
    for story in stories:
        lines.append(f"{story.readable_id:<12} {str(story.state):<20} {story.url}")
    return "\n".join(lines)


def stage_release(
    config: Config,
    tracker: IssueTracker,
    code_review: CodeReviewTool,
    options: StageOptions | None = None,
) -> StageResult:
    """Stage the running release.

    Raises:
        TaskError: when a step fails; completed steps are rolled back
    """
    options = options or StageOptions()
    repo = config.repo
    remote = config.git.remote
    release = config.git.release
    staging = config.git.staging

    run = ReleaseRun(config, "stage", STAGE_STATES)
    with run.running():
        with run.step("Fetch the remote repository", "remote_fetched"):
            if current_branch(repo) == release:
                raise TrunkflowError(f"cannot stage the release while on branch '{release}'")
            if not options.skip_fetch:
                update_remotes(repo, remote)
            check_or_create_tracking_branch(repo, release, remote)
            version = read_from_branch(repo, config.version, release).base()
            tag = version.release_tag()

        with run.step("Make sure all stories are in a stageable state") as task:
            stories = tracker.release_stories(version)
            blocking = unstageable_stories(stories)
            if blocking:
                raise TaskError(
                    task,
                    TrunkflowError(f"{len(blocking)} story(ies) cannot be staged"),
                    hint=(
                        "Make sure the stories are in one of the following states: "
                        f"{', '.join(sorted(str(s) for s in STAGEABLE_STATES))}\n\n"
                        + format_story_states(blocking)
                    ),
                    details={"stories": blocking},
                )

            groups = sort_story_changes(story_changes(repo, stories, config), stories)
            left_behind = release_changes_to_cherry_pick(repo, groups, config)
            if left_behind:
                print("\nThe following changes are not on the release branch and will be left behind:\n")
                print(format_story_changes(left_behind, readable_id=tracker.readable_id))
                if not options.yes:
                    prompt.confirm_or_cancel("Stage the release anyway?")
            elif not options.yes:
                print(f"\nRelease {version} with {len(stories)} story(ies) is about to be staged.\n")
                prompt.confirm_or_cancel("Stage the release?")
        run.advance("story_state_validated")

        task = f"Reset branch '{staging}' to point to branch '{release}'"
        with run.step(task, "staging_branch_reset"):
            run.chain.push_task(task, create_or_reset_branch(repo, staging, release))

        task = f"Delete branch '{release}'"
        with run.step(task, "release_branch_deleted"):
            release_sha = hexsha(repo, f"refs/heads/{release}")
            delete_branch(repo, release)
            run.chain.push_task(task, RecreateBranch(repo, release, release_sha))

        next_version = stage_version(version, config.version)
        task = f"Bump version (branch '{staging}' -> {next_version})"
        with run.step(task, "version_bumped"):
            run.chain.push_task(task, set_for_branch(repo, config.version, next_version, staging))

        task = f"Tag branch '{staging}' with tag '{tag}'"
        with run.step(task, "release_tagged"):
            run.chain.push_task(task, create_tag(repo, tag, staging, f"Release {version}"))

        task = f"Finalise release {version} in the code review tool"
        with run.step(task, "code_review_finalised"):
            run.chain.push_task(task, code_review.finalise_release(version))

        task = "Move tested stories to the staged state"
        with run.step(task, "issue_tracker_staged"):
            for story in stories:
                if story.state is StoryState.TESTED:
                    run.chain.push_task(f"Stage story {story.readable_id}", story.stage())

        task = "Push the changes to the remote repository"
        with run.step(task, "pushed"):
            run.chain.push_task(task, ReportOnly(
                task, f"'{staging}', '{tag}' and the deletion of '{release}' may already be pushed"))
            push(repo, remote, f":{release}", f"{staging}:{staging}",
                 f"refs/tags/{tag}:refs/tags/{tag}", force=True)

        run.advance("done")

    return StageResult(version=version, tag=tag, stories=stories)


def cmd_release_stage(args, config: Config) -> int:
    """Stage the running release."""
    options = StageOptions(skip_fetch=args.no_fetch, yes=args.yes)
    result = stage_release(config, get_issue_tracker(config), get_code_review_tool(config), options)
    print(f"\nRelease {result.version} staged and tagged {result.tag}.")
    return 0
