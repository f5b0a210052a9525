"""
tflow release cherry-pick - Bring missing release changes onto the release branch.

Collects the changes of the stories assigned to the running release, finds the
ones missing from the release branch and cherry-picks their trunk commits,
oldest first. The release branch is not pushed.
"""

import logging
from dataclasses import dataclass, field

from trunkflow.action.compensations import ResetBranch
from trunkflow.changes.planner import (
    commits_to_cherry_pick,
    ensure_trunk_reachable,
    release_changes_to_cherry_pick,
)
from trunkflow.changes.story import StoryChangeGroup, format_story_changes, sort_story_changes, story_changes
from trunkflow.git.branch import check_or_create_tracking_branch, checkout, hexsha
from trunkflow.git.remote import cherry_pick, update_remotes
from trunkflow.git.runner import run_git
from trunkflow.git.tag import commits_since_last_release
from trunkflow.lib import prompt
from trunkflow.lib.config import Config
from trunkflow.lib.errors import ReachabilityInconsistency, TaskError, TrunkflowError
from trunkflow.lib.version import read_from_branch
from trunkflow.modules import get_issue_tracker
from trunkflow.modules.base import IssueTracker
from trunkflow.workflow.fsm import CHERRY_PICK_STATES
from trunkflow.workflow.tasks import ReleaseRun

logger = logging.getLogger(__name__)

UNREACHABLE_HINT = """The following story changes are not reachable from the trunk branch:

{changes}
Please cherry-pick these changes onto the trunk branch.
Only then we can proceed and cherry-pick the changes."""

CONFLICT_HINT = """It was not possible to cherry-pick the missing changes into the release branch.
The cherry-pick is still in progress. Please check the repository status and
resolve the cherry-pick manually."""

NOT_PUSHED_BANNER = """
  ###################################################################
  # IMPORTANT: The release branch is not being pushed automatically #
  ###################################################################
"""


@dataclass
class CherryPickOptions:
    skip_fetch: bool = False
    yes: bool = False


@dataclass
class CherryPickResult:
    groups: list[StoryChangeGroup] = field(default_factory=list)
    shas: list[str] = field(default_factory=list)


def abort_cherry_pick(run: ReleaseRun) -> bool:
    """Abort an in-progress cherry-pick. True when the tree is clean again."""
    result = run_git(["cherry-pick", "--abort"], run.repo)
    if not result.success:
        logger.error(f"Abort the cherry-pick: {result.stderr.strip()}")
    return result.success


def cherry_pick_release(
    config: Config,
    tracker: IssueTracker,
    options: CherryPickOptions | None = None,
) -> CherryPickResult:
    """Cherry-pick the release changes missing from the release branch.

    Raises:
        TaskError: when a step fails; the release branch is reset back
    """
    options = options or CherryPickOptions()
    repo = config.repo
    remote = config.git.remote
    trunk = config.git.trunk
    release = config.git.release

    run = ReleaseRun(config, "cherry-pick", CHERRY_PICK_STATES)
    with run.running():
        with run.step("Fetch the remote repository", "remote_fetched"):
            if not options.skip_fetch:
                update_remotes(repo, remote)

        with run.step("Make sure all important branches are up to date", "branches_checked"):
            for branch in (release, trunk):
                check_or_create_tracking_branch(repo, branch, remote)
            checkout(repo, release)

        with run.step("Collect the release changes", "changes_planned") as task:
            version = read_from_branch(repo, config.version, release).base()
            stories = tracker.release_stories(version)
            if not stories:
                raise TaskError(task, TrunkflowError("no relevant stories found"))
            groups = sort_story_changes(story_changes(repo, stories, config), stories)
            if not groups:
                raise TaskError(task, TrunkflowError("no relevant commits found"))
            groups = release_changes_to_cherry_pick(repo, groups, config)

        with run.step("Make sure the changes are reachable from trunk", "trunk_reachability_verified") as task:
            try:
                ensure_trunk_reachable(groups, f"refs/heads/{trunk}")
            except ReachabilityInconsistency as e:
                changes = format_story_changes(e.groups, readable_id=tracker.readable_id)
                raise TaskError(task, e, UNREACHABLE_HINT.format(changes=changes),
                                details={"groups": e.groups}) from e

        if not groups:
            print("\nAll release changes are already on the release branch.")
            run.advance("confirmed")
            run.advance("cherry_picked")
            run.advance("done")
            return CherryPickResult()

        with run.step("Ask the user to confirm cherry-picking", "confirmed"):
            print()
            print(format_story_changes(groups, readable_id=tracker.readable_id))
            print("The changes listed above will be cherry-picked into the release branch.")
            if not options.yes:
                prompt.confirm_or_cancel("Are you sure you want to continue?")
            print()

        task = "Cherry-pick the missing changes into the release branch"
        with run.step(task, "cherry_picked"):
            shas = commits_to_cherry_pick(commits_since_last_release(repo, trunk), groups)
            run.chain.push_task(task, ResetBranch(repo, release, hexsha(repo, f"refs/heads/{release}")))
            try:
                cherry_pick(repo, *shas)
            except TrunkflowError as e:
                if not abort_cherry_pick(run):
                    # Leave everything as it is for manual resolution
                    run.restore_branch = False
                    run.chain.clear()
                    raise TaskError(task, e, CONFLICT_HINT) from e
                raise

        run.advance("done")

    logger.info("All missing changes cherry-picked into the release branch")
    print(NOT_PUSHED_BANNER)
    return CherryPickResult(groups=groups, shas=shas)


def cmd_release_cherry_pick(args, config: Config) -> int:
    """Cherry-pick the missing release changes onto the release branch."""
    options = CherryPickOptions(skip_fetch=args.no_fetch, yes=args.yes)
    result = cherry_pick_release(config, get_issue_tracker(config), options)
    print(f"{len(result.shas)} commit(s) cherry-picked.")
    return 0
