"""
Project version handling.

The version lives in a JSON file (package.json by default) under the
"version" key. Each branch of the branching model carries its own suffix:

    trunk    1.3.0-dev
    release  1.2.0-qa
    staging  1.2.0-stage
    stable   tagged v1.2.0
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from trunkflow.action.compensations import ResetBranch
from trunkflow.git.branch import checkout, hexsha
from trunkflow.git.runner import git_output, run_git
from trunkflow.lib.config import VersionConfig
from trunkflow.lib.errors import TrunkflowError

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(r'^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z-]+))?$')
VERSION_FIELD_RE = re.compile(r'("version"\s*:\s*)"[^"]*"')


class VersionError(TrunkflowError):
    """Invalid version string or version file."""


@dataclass(frozen=True, order=True)
class Version:
    major: int
    minor: int
    patch: int
    suffix: str = ""

    @classmethod
    def parse(cls, value: str) -> "Version":
        """Parse "X.Y.Z" or "X.Y.Z-suffix"; a leading "v" is accepted."""
        match = VERSION_RE.match(value.strip())
        if not match:
            raise VersionError(f"invalid version string: {value!r}")
        major, minor, patch, suffix = match.groups()
        return cls(int(major), int(minor), int(patch), suffix or "")

    def __str__(self) -> str:
        base = self.base_string()
        return f"{base}-{self.suffix}" if self.suffix else base

    def base_string(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def base(self) -> "Version":
        return Version(self.major, self.minor, self.patch)

    def with_suffix(self, suffix: str) -> "Version":
        return Version(self.major, self.minor, self.patch, suffix)

    def increment_minor(self) -> "Version":
        return Version(self.major, self.minor + 1, 0, self.suffix)

    def increment_patch(self) -> "Version":
        return Version(self.major, self.minor, self.patch + 1, self.suffix)

    def release_tag(self) -> str:
        return f"v{self.base_string()}"


def trunk_version(version: Version, config: VersionConfig) -> Version:
    return version.with_suffix(config.trunk_suffix)


def testing_version(version: Version, config: VersionConfig) -> Version:
    return version.with_suffix(config.testing_suffix)


def stage_version(version: Version, config: VersionConfig) -> Version:
    return version.with_suffix(config.stage_suffix)


def parse_version_file(content: str, filename: str) -> Version:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise VersionError(f"{filename}: invalid JSON: {e}") from None
    value = data.get("version") if isinstance(data, dict) else None
    if not value:
        raise VersionError(f"version key not found in {filename}")
    return Version.parse(value)


def read_from_branch(repo: Path, config: VersionConfig, branch: str) -> Version:
    """Read the version committed on branch without checking it out."""
    content = git_output(["show", f"{branch}:{config.file}"], repo)
    return parse_version_file(content, config.file)


def replace_version(content: str, version: Version, filename: str) -> str:
    new_content, count = VERSION_FIELD_RE.subn(rf'\g<1>"{version}"', content, count=1)
    if count == 0:
        raise VersionError(f"{filename}: failed to replace version string")
    return new_content


def set_for_branch(repo: Path, config: VersionConfig, version: Version, branch: str) -> ResetBranch:
    """Commit the version onto branch.

    Checks branch out, rewrites the version file and commits it. Returns the
    action resetting branch to where it was.
    """
    status = run_git(["status", "--porcelain", "--", config.file], repo)
    if status.stdout.strip():
        raise VersionError(f"{config.file} has uncommitted changes")

    previous = hexsha(repo, f"refs/heads/{branch}")
    checkout(repo, branch)

    path = repo / config.file
    path.write_text(replace_version(path.read_text(), version, config.file))
    try:
        git_output(["add", "--", config.file], repo)
        git_output(["commit", "-m", f"Bump version to {version}"], repo)
    except TrunkflowError:
        # The file was clean before, nothing but our edit is lost
        run_git(["checkout", "HEAD", "--", config.file], repo)
        raise

    logger.debug(f"Committed version {version} onto '{branch}'")
    return ResetBranch(repo, branch, previous)
