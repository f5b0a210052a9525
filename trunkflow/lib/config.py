"""
Configuration loader for trunkflow.

Reads .trunkflow.yml from the repository root, validates it against the
bundled schema and fills in defaults. The resulting Config is passed by
parameter to everything that needs it.

Example .trunkflow.yml:

    git:
      remote: origin
      branches:
        trunk: develop
        release: release
        staging: stage
        stable: master
    version:
      file: package.json
    issue_tracker:
      module: github
      repository: acme/widgets
      story_label: story
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from trunkflow.lib import validate
from trunkflow.lib.constants import LOCAL_CONFIG_FILE
from trunkflow.lib.errors import ConfigError

logger = logging.getLogger(__name__)

# Abstract story state -> GitHub label
DEFAULT_STATE_LABELS = {
    "approved": "approved",
    "being_implemented": "being implemented",
    "implemented": "implemented",
    "reviewed": "reviewed",
    "skip_review": "no review",
    "passed_testing": "qa+",
    "failed_testing": "qa-",
    "skip_testing": "no qa",
    "staged": "staged",
    "accepted": "client accepted",
    "rejected": "client rejected",
}

DEFAULT_SKIP_CHECK_LABELS = ["dupe", "wontfix"]


@dataclass
class GitConfig:
    """Remote and branch names of the branching model."""
    remote: str = "origin"
    trunk: str = "develop"
    release: str = "release"
    staging: str = "stage"
    stable: str = "master"


@dataclass
class VersionConfig:
    file: str = "package.json"  # Relative to the repository root
    trunk_suffix: str = "dev"
    testing_suffix: str = "qa"
    stage_suffix: str = "stage"


@dataclass
class IssueTrackerConfig:
    module: str = "github"
    repository: str = ""  # owner/name; empty lets gh infer it from the clone
    story_label: str = "story"
    state_labels: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STATE_LABELS))
    skip_check_labels: list[str] = field(default_factory=lambda: list(DEFAULT_SKIP_CHECK_LABELS))


@dataclass
class ChangesConfig:
    """Source ref patterns used to filter story changes."""
    include_sources: list[str] = field(default_factory=list)
    exclude_sources: list[str] = field(default_factory=list)


@dataclass
class Config:
    repo: Path
    git: GitConfig = field(default_factory=GitConfig)
    version: VersionConfig = field(default_factory=VersionConfig)
    issue_tracker: IssueTrackerConfig = field(default_factory=IssueTrackerConfig)
    changes: ChangesConfig = field(default_factory=ChangesConfig)


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from None
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top-level value must be a mapping")
    return data


def load_config(repo: Path) -> Config:
    """Load and validate <repo>/.trunkflow.yml.

    A missing file yields the default configuration.

    Raises:
        ConfigError: if the file cannot be parsed or fails validation
    """
    config_path = repo / LOCAL_CONFIG_FILE
    if not config_path.exists():
        logger.debug(f"No {LOCAL_CONFIG_FILE} in {repo}, using defaults")
        return Config(repo=repo)

    data = _read_yaml(config_path)
    validate.validate(data, "config")

    git_data = data.get("git", {})
    branches = git_data.get("branches", {})
    git = GitConfig(
        remote=git_data.get("remote", "origin"),
        trunk=branches.get("trunk", "develop"),
        release=branches.get("release", "release"),
        staging=branches.get("staging", "stage"),
        stable=branches.get("stable", "master"),
    )

    version_data = data.get("version", {})
    version = VersionConfig(
        file=version_data.get("file", "package.json"),
        trunk_suffix=version_data.get("trunk_suffix", "dev"),
        testing_suffix=version_data.get("testing_suffix", "qa"),
        stage_suffix=version_data.get("stage_suffix", "stage"),
    )

    tracker_data = data.get("issue_tracker", {})
    state_labels = dict(DEFAULT_STATE_LABELS)
    state_labels.update(tracker_data.get("state_labels", {}))
    unknown = sorted(set(state_labels) - set(DEFAULT_STATE_LABELS))
    if unknown:
        raise ConfigError(f"{config_path}: unknown state label key(s): {', '.join(unknown)}")
    issue_tracker = IssueTrackerConfig(
        module=tracker_data.get("module", "github"),
        repository=tracker_data.get("repository", ""),
        story_label=tracker_data.get("story_label", "story"),
        state_labels=state_labels,
        skip_check_labels=tracker_data.get("skip_check_labels", list(DEFAULT_SKIP_CHECK_LABELS)),
    )

    changes_data = data.get("changes", {})
    changes = ChangesConfig(
        include_sources=changes_data.get("include_sources", []),
        exclude_sources=changes_data.get("exclude_sources", []),
    )

    return Config(repo=repo, git=git, version=version, issue_tracker=issue_tracker, changes=changes)
