"""
tflow release start - Start a new release.

Creates the release branch on top of trunk, bumps the trunk version for the
release after, assigns the stories found in the new trunk commits to the
release in the issue tracker and pushes both branches.
"""

import logging
from dataclasses import dataclass, field

from trunkflow.action.compensations import ReportOnly
from trunkflow.git.branch import (
    check_or_create_tracking_branch,
    create_branch,
    ensure_branch_not_exists,
    ensure_branch_synchronized,
)
from trunkflow.git.commit import story_ids
from trunkflow.git.remote import push, update_remotes
from trunkflow.git.tag import commits_since_last_release
from trunkflow.lib import prompt
from trunkflow.lib.config import Config
from trunkflow.lib.version import (
    Version,
    VersionError,
    read_from_branch,
    set_for_branch,
    trunk_version,
)
from trunkflow.modules import get_issue_tracker
from trunkflow.modules.base import IssueTracker, Story
from trunkflow.workflow.fsm import START_STATES
from trunkflow.workflow.tasks import ReleaseRun

logger = logging.getLogger(__name__)


@dataclass
class StartOptions:
    next_trunk_version: Version | None = None  # Default: next minor version
    skip_fetch: bool = False
    yes: bool = False  # Do not ask for confirmation


@dataclass
class StartResult:
    version: Version
    next_trunk_version: Version
    stories: list = field(default_factory=list)


def print_stories(stories: list[Story]) -> None:
    print(f"{'STORY':<12} {'STATE':<20} TITLE")
    for story in stories:
        print(f"{story.readable_id:<12} {str(story.state):<20} {story.title}")


def start_release(
    config: Config,
    tracker: IssueTracker,
    options: StartOptions | None = None,
) -> StartResult:
    """Start the release currently being developed on trunk.

    Raises:
        TaskError: when a step fails; completed steps are rolled back
    """
    options = options or StartOptions()
    repo = config.repo
    remote = config.git.remote
    trunk = config.git.trunk
    release = config.git.release

    run = ReleaseRun(config, "start", START_STATES)
    with run.running():
        with run.step("Fetch the remote repository", "remote_fetched"):
            if not options.skip_fetch:
                update_remotes(repo, remote)

        with run.step("Make sure the release can be started", "branches_checked"):
            ensure_branch_not_exists(repo, release, remote)
            check_or_create_tracking_branch(repo, trunk, remote)
            ensure_branch_synchronized(repo, trunk, remote)

        with run.step("Collect the stories to be released", "stories_collected"):
            release_version = read_from_branch(repo, config.version, trunk).base()
            next_version = trunk_version(
                options.next_trunk_version or release_version.increment_minor(), config.version)
            if next_version.base() <= release_version:
                raise VersionError(
                    f"next trunk version {next_version} must be greater than {release_version}")

            ids = story_ids(commits_since_last_release(repo, trunk))
            stories = tracker.list_stories_by_tag(ids) if ids else []

            print(f"\nRelease {release_version} will contain the following stories:\n")
            if stories:
                print_stories(stories)
            else:
                print("  (no stories)")
            print(f"\nTrunk will be bumped to {next_version}.\n")
            if not options.yes:
                prompt.confirm_or_cancel("Start the release?")

        task = f"Create branch '{release}' on top of branch '{trunk}'"
        with run.step(task, "release_branch_created"):
            run.chain.push_task(task, create_branch(repo, release, trunk))

        task = f"Bump version (branch '{trunk}' -> {next_version})"
        with run.step(task, "trunk_version_bumped"):
            run.chain.push_task(task, set_for_branch(repo, config.version, next_version, trunk))

        task = f"Assign the stories to release {release_version} in the issue tracker"
        with run.step(task, "issue_tracker_started"):
            run.chain.push(tracker.start_release(release_version, stories))

        task = "Push the modified branches"
        with run.step(task, "pushed"):
            run.chain.push_task(task, ReportOnly(
                task, f"branches '{release}' and '{trunk}' may already be pushed to '{remote}'"))
            push(repo, remote, f"{release}:{release}", f"{trunk}:{trunk}")

        run.advance("done")

    return StartResult(version=release_version, next_trunk_version=next_version, stories=stories)


def cmd_release_start(args, config: Config) -> int:
    """Start a new release."""
    options = StartOptions(
        next_trunk_version=Version.parse(args.next_trunk_version) if args.next_trunk_version else None,
        skip_fetch=args.no_fetch,
        yes=args.yes,
    )
    result = start_release(config, get_issue_tracker(config), options)
    print(f"\nRelease {result.version} started with {len(result.stories)} story(ies).")
    print(f"Trunk is now at {result.next_trunk_version}.")
    return 0
