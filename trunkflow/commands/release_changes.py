"""
tflow release changes - List the changes associated with the running release.

Change sets are the commits sharing a Change-Id. They are printed grouped by
story, together with the commit SHA, the source ref and the commit title.
"""

import logging
import re
from dataclasses import dataclass, field

from trunkflow.changes.change import filter_changes_by_source
from trunkflow.changes.planner import release_changes_to_cherry_pick
from trunkflow.changes.story import StoryChangeGroup, format_story_changes, sort_story_changes, story_changes
from trunkflow.git.branch import check_or_create_tracking_branch
from trunkflow.lib.config import Config
from trunkflow.lib.errors import TaskError, TrunkflowError
from trunkflow.lib.version import read_from_branch
from trunkflow.modules import get_issue_tracker
from trunkflow.modules.base import IssueTracker

logger = logging.getLogger(__name__)


@dataclass
class ChangesOptions:
    porcelain: bool = False
    to_cherry_pick: bool = False  # Only changes missing from the release branch
    include_sources: list[str] = field(default_factory=list)
    exclude_sources: list[str] = field(default_factory=list)


def list_release_changes(
    config: Config,
    tracker: IssueTracker,
    options: ChangesOptions | None = None,
) -> list[StoryChangeGroup]:
    """Story changes of the running release, ordered like the tracker stories.

    Raises:
        TaskError: when a step fails
    """
    options = options or ChangesOptions()
    repo = config.repo
    release = config.git.release

    task = "Make sure that the local release branch exists"
    try:
        check_or_create_tracking_branch(repo, release, config.git.remote)
    except TrunkflowError as e:
        raise TaskError(task, e) from e

    task = "Collect the release changes"
    logger.info(f"Run: {task}")
    try:
        version = read_from_branch(repo, config.version, release).base()
        stories = tracker.release_stories(version)
        if not stories:
            raise TrunkflowError("no relevant stories found")
        groups = sort_story_changes(story_changes(repo, stories, config), stories)
        if options.to_cherry_pick:
            groups = release_changes_to_cherry_pick(repo, groups, config)
    except TaskError:
        raise
    except TrunkflowError as e:
        raise TaskError(task, e) from e

    if options.include_sources or options.exclude_sources:
        include = [re.compile(p) for p in options.include_sources]
        exclude = [re.compile(p) for p in options.exclude_sources]
        groups = [
            StoryChangeGroup(group.story_id, changes)
            for group in groups
            if (changes := filter_changes_by_source(group.changes, include, exclude))
        ]
    return groups


def cmd_release_changes(args, config: Config) -> int:
    """List the changes associated with the running release."""
    tracker = get_issue_tracker(config)
    options = ChangesOptions(
        porcelain=args.porcelain,
        to_cherry_pick=args.to_cherry_pick,
        include_sources=args.include_source or [],
        exclude_sources=args.exclude_source or [],
    )
    groups = list_release_changes(config, tracker, options)
    readable_id = None if options.porcelain else tracker.readable_id
    print(format_story_changes(groups, porcelain=options.porcelain, readable_id=readable_id), end="")
    return 0
