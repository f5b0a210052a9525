"""
tflow release deploy - Deploy a release into production.

The stable branch is reset to the chosen release tag and force pushed.
Without --release the operator picks one of the releases tagged after the
current stable tip whose stories are all accepted; the stories of every
release being deployed are then marked as released. With --release no checks
are performed at all.
"""

import logging
from dataclasses import dataclass, field

from trunkflow.action.compensations import ReportOnly
from trunkflow.git.branch import (
    check_or_create_tracking_branch,
    create_or_reset_branch,
    current_branch,
    ref_exists,
)
from trunkflow.git.remote import push
from trunkflow.git.tag import list_release_tags, tags_pointing_at
from trunkflow.lib import prompt
from trunkflow.lib.config import Config
from trunkflow.lib.errors import RefNotFoundError, TaskError, TrunkflowError
from trunkflow.lib.version import Version, VersionError
from trunkflow.modules import get_issue_tracker
from trunkflow.modules.base import RELEASABLE_STATES, IssueTracker, Story
from trunkflow.workflow.fsm import DEPLOY_STATES
from trunkflow.workflow.tasks import ReleaseRun

logger = logging.getLogger(__name__)

INVALID_TAG_HINT = """Make sure branch '{branch}' is tagged with a correct release tag.
Every release tag must be in the form of 'vX.Y.Z' where
X.Y.Z is the project version being released."""

TRACKER_FAILED_HINT = """The stable branch has been pushed already.
Please mark the failed stories as released in the issue tracker manually
to keep the issue tracker consistent."""


@dataclass
class DeployOptions:
    release: Version | None = None  # Deploy this release without any checks


@dataclass
class DeployableRelease:
    version: Version
    stories: list = field(default_factory=list)

    @property
    def tag(self) -> str:
        return self.version.release_tag()


@dataclass
class DeployResult:
    tag: str
    released: list = field(default_factory=list)  # DeployableRelease, oldest first


def is_releasable(stories: list[Story]) -> bool:
    return all(story.state in RELEASABLE_STATES or story.skip_check for story in stories)


def deployed_tag(run: ReleaseRun) -> str:
    """Release tag of the stable branch tip."""
    stable = run.config.git.stable
    task = f"Get the tag pointing to the tip of branch '{stable}'"
    hint = INVALID_TAG_HINT.format(branch=stable)

    tags = tags_pointing_at(run.repo, f"refs/heads/{stable}")
    if not tags:
        raise TaskError(task, TrunkflowError(f"branch '{stable}' is not tagged"), hint)

    versions = []
    for tag in tags:
        try:
            versions.append((Version.parse(tag), tag))
        except VersionError as e:
            raise TaskError(task, e, hint) from e
    return max(versions)[1]


def new_release_tags(run: ReleaseRun) -> list[str]:
    """Release tags newer than the deployed one, newest first."""
    deployed = deployed_tag(run)
    tags = list_release_tags(run.repo)
    if deployed in tags:
        tags = tags[tags.index(deployed) + 1:]
    else:
        floor = Version.parse(deployed)
        tags = [tag for tag in tags if Version.parse(tag) > floor]
    return list(reversed(tags))


def deployable_releases(run: ReleaseRun, tracker: IssueTracker) -> list[DeployableRelease]:
    """Releases that can be deployed, newest first.

    An unreleasable release also blocks every release tagged after it.
    """
    releasable: list[DeployableRelease] = []
    for tag in new_release_tags(run):
        version = Version.parse(tag)
        stories = tracker.release_stories(version)
        if not stories:
            logger.warning(f"Release '{tag}' not found in the issue tracker")
            continue

        if not is_releasable(stories):
            logger.info(f"Release '{tag}' is not releasable")
            for release in releasable:
                logger.info(f"Marking '{release.tag}' as not releasable as well")
            releasable = []
            continue

        releasable.append(DeployableRelease(version, stories))
    return releasable


def print_releases(releases: list[DeployableRelease]) -> None:
    print("\nThe following releases can be deployed:\n")
    print(f"{'Index':<8}Release")
    print(f"{'=====':<8}=======")
    for i, release in enumerate(releases, 1):
        print(f"{i:<8}{release.version}")
    print()


def release_stories(releases: list[DeployableRelease]) -> list[str]:
    """Mark the stories of releases as released.

    Failures are logged and skipped since the push cannot be undone. Returns
    the readable ids of the stories that failed.
    """
    failed = []
    for release in releases:
        task = f"Mark release '{release.tag}' as released"
        logger.info(f"Run: {task}")
        for story in release.stories:
            try:
                story.mark_as_released()
            except TrunkflowError as e:
                logger.error(f"{task}: story {story.readable_id}: {e}")
                failed.append(story.readable_id)
    return failed


def deploy_release(
    config: Config,
    tracker: IssueTracker,
    options: DeployOptions | None = None,
) -> DeployResult:
    """Deploy a release by resetting and force pushing the stable branch.

    Raises:
        TaskError: when a step fails; the stable branch is reset back unless
            it has been pushed already
    """
    options = options or DeployOptions()
    repo = config.repo
    remote = config.git.remote
    stable = config.git.stable

    run = ReleaseRun(config, "deploy", DEPLOY_STATES)
    with run.running():
        with run.step(f"Make sure branch '{stable}' exists and is not checked out"):
            check_or_create_tracking_branch(repo, stable, remote)
            if current_branch(repo) == stable:
                raise TrunkflowError(f"cannot deploy while on branch '{stable}'")

        if options.release is not None:
            with run.step("Make sure the given release tag exists", "release_selected"):
                target_tag = options.release.release_tag()
                if not ref_exists(repo, f"refs/tags/{target_tag}"):
                    raise RefNotFoundError(target_tag)
                to_release: list[DeployableRelease] = []
        else:
            with run.step("Get the list of deployable releases") as task:
                releases = deployable_releases(run, tracker)
                if not releases:
                    raise TaskError(task, TrunkflowError("no deployable releases found"))

            with run.step("Prompt the user to choose the release to be deployed", "release_selected"):
                print_releases(releases)
                index = prompt.prompt_index(
                    "Choose the release to be deployed by inserting its index", len(releases))
                target_tag = releases[index].tag
                # Oldest first, down to the chosen release
                to_release = list(reversed(releases[index:]))

        task = f"Reset branch '{stable}' to point to '{target_tag}'"
        with run.step(task, "stable_branch_reset"):
            run.chain.push_task(task, create_or_reset_branch(repo, stable, f"refs/tags/{target_tag}"))

        task = f"Push branch '{stable}' to remote '{remote}'"
        with run.step(task, "pushed"):
            run.chain.push_task(task, ReportOnly(task, f"'{stable}' may already be pushed to '{remote}'"))
            push(repo, remote, f"{stable}:{stable}", force=True)
        # The push is the point of no return
        run.chain.clear()

        with run.step("Mark the deployed stories as released", "issue_tracker_released") as task:
            failed = release_stories(to_release)
            if failed:
                raise TaskError(
                    task,
                    TrunkflowError(f"failed to mark {len(failed)} story(ies) as released: {', '.join(failed)}"),
                    hint=TRACKER_FAILED_HINT,
                )

        run.advance("done")

    return DeployResult(tag=target_tag, released=to_release)


def cmd_release_deploy(args, config: Config) -> int:
    """Deploy a release into production."""
    options = DeployOptions(release=Version.parse(args.release) if args.release else None)
    result = deploy_release(config, get_issue_tracker(config), options)
    print(f"\nBranch '{config.git.stable}' now points to {result.tag}.")
    return 0
