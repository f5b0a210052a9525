"""
Commit source attribution.

`git log --all --source` reports the first ref git walked to reach a commit,
which is often a feature branch forked from trunk. Workflows care whether a
commit is on trunk or on the release branch, so the source is rewritten from
the first matching range below:

    trunk                        -> refs/heads/<trunk>
    trunk..<remote>/trunk        -> refs/remotes/<remote>/<trunk>
    trunk..release               -> refs/heads/<release>
    release..<remote>/release    -> refs/remotes/<remote>/<release>

Commits outside all of these keep the raw value git printed.
"""

import logging
from pathlib import Path

from trunkflow.git.branch import local_branch_exists, ref_exists
from trunkflow.git.commit import Commit
from trunkflow.git.log import show_commit_range
from trunkflow.lib.config import Config
from trunkflow.lib.errors import RefNotFoundError

logger = logging.getLogger(__name__)


def has_upstream(repo: Path, branch: str, remote: str) -> bool:
    return ref_exists(repo, f"refs/remotes/{remote}/{branch}")


def source_ranges(repo: Path, config: Config) -> list[tuple[str, str]]:
    """(revision range, source ref) pairs in priority order.

    Raises:
        RefNotFoundError: if the trunk branch does not exist locally
    """
    remote = config.git.remote
    trunk = config.git.trunk
    release = config.git.release

    if not local_branch_exists(repo, trunk):
        raise RefNotFoundError(f"refs/heads/{trunk}")

    ranges = [(trunk, f"refs/heads/{trunk}")]
    if has_upstream(repo, trunk, remote):
        ranges.append((f"{trunk}..{remote}/{trunk}", f"refs/remotes/{remote}/{trunk}"))
    else:
        logger.warning(f"Branch '{remote}/{trunk}' not found, skipping it for source attribution")

    if local_branch_exists(repo, release):
        ranges.append((f"{trunk}..{release}", f"refs/heads/{release}"))
        if has_upstream(repo, release, remote):
            ranges.append((f"{release}..{remote}/{release}", f"refs/remotes/{remote}/{release}"))
    else:
        logger.debug(f"Branch '{release}' not found, skipping it for source attribution")
    return ranges


def fix_commit_sources(repo: Path, commits: list[Commit], config: Config) -> None:
    """Rewrite commit.source in place according to the branching model."""
    source_map: dict[str, str] = {}
    for revision_range, source in source_ranges(repo, config):
        for commit in show_commit_range(repo, revision_range):
            # Ranges are disjoint, earlier ones win anyway
            source_map.setdefault(commit.sha, source)

    for commit in commits:
        source = source_map.get(commit.sha)
        if source is not None:
            commit.source = source
