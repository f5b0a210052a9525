"""Tests for tflow release deploy."""

import logging
from unittest.mock import DEFAULT, patch

import pytest

from conftest import FakeStory, FakeTracker, RecordingAction
from trunkflow.commands.release_deploy import (
    TRACKER_FAILED_HINT,
    DeployOptions,
    deploy_release,
    is_releasable,
)
from trunkflow.lib.errors import GitCommandError, RefNotFoundError, TaskError
from trunkflow.lib.version import Version
from trunkflow.modules.base import StoryState

MODULE = "trunkflow.commands.release_deploy"

ACCEPTED = StoryState.ACCEPTED


@pytest.fixture
def git(config):
    """Patch every git helper used by the deploy command."""
    log = []
    with patch.multiple(
        MODULE,
        check_or_create_tracking_branch=DEFAULT,
        current_branch=DEFAULT,
        ref_exists=DEFAULT,
        list_release_tags=DEFAULT,
        tags_pointing_at=DEFAULT,
        create_or_reset_branch=DEFAULT,
        push=DEFAULT,
    ) as mocks, patch("trunkflow.workflow.tasks.current_branch", return_value="develop"), \
            patch("trunkflow.workflow.tasks.checkout"):
        mocks["current_branch"].return_value = "develop"
        mocks["tags_pointing_at"].return_value = ["v1.0.0"]
        mocks["list_release_tags"].return_value = ["v0.9.0", "v1.0.0", "v1.1.0", "v1.2.0", "v1.3.0"]
        mocks["create_or_reset_branch"].return_value = RecordingAction(log, "reset master")
        mocks["log"] = log
        yield mocks


def accepted_tracker():
    return FakeTracker(releases={
        "1.1.0": [FakeStory(1, ACCEPTED)],
        "1.2.0": [FakeStory(2, ACCEPTED), FakeStory(3, StoryState.CLOSED)],
        "1.3.0": [FakeStory(4, ACCEPTED)],
    })


class TestIsReleasable:
    def test_states(self):
        assert is_releasable([FakeStory(1, ACCEPTED), FakeStory(2, StoryState.CLOSED)])
        assert not is_releasable([FakeStory(1, ACCEPTED), FakeStory(2, StoryState.STAGED)])

    def test_skip_check(self):
        assert is_releasable([FakeStory(1, StoryState.NEW, skip_check=True)])


class TestDeployRelease:
    def test_deploys_chosen_release(self, config, git, capsys):
        tracker = accepted_tracker()
        with patch("builtins.input", return_value="2"):
            result = deploy_release(config, tracker)

        assert result.tag == "v1.2.0"
        assert [r.tag for r in result.released] == ["v1.1.0", "v1.2.0"]
        git["create_or_reset_branch"].assert_called_once_with(config.repo, "master", "refs/tags/v1.2.0")
        git["push"].assert_called_once_with(config.repo, "origin", "master:master", force=True)

        released = tracker.releases
        assert released["1.1.0"][0].calls == ["mark_as_released"]
        assert [s.calls for s in released["1.2.0"]] == [["mark_as_released"], ["mark_as_released"]]
        assert released["1.3.0"][0].calls == []

        out = capsys.readouterr().out
        assert out.index("1.3.0") < out.index("1.2.0") < out.index("1.1.0")

    def test_unreleasable_release_blocks_newer_ones(self, config, git, caplog):
        caplog.set_level(logging.INFO)
        tracker = FakeTracker(releases={
            "1.1.0": [FakeStory(1, ACCEPTED)],
            "1.2.0": [FakeStory(2, StoryState.STAGED)],
            "1.3.0": [FakeStory(3, ACCEPTED)],
        })
        with patch("builtins.input", return_value="1"):
            result = deploy_release(config, tracker)

        assert result.tag == "v1.1.0"
        assert "Release 'v1.2.0' is not releasable" in caplog.text
        assert "Marking 'v1.3.0' as not releasable as well" in caplog.text

    def test_release_missing_from_tracker_is_skipped(self, config, git, caplog):
        tracker = FakeTracker(releases={"1.1.0": [FakeStory(1, ACCEPTED)]})
        with patch("builtins.input", return_value="1"):
            result = deploy_release(config, tracker)
        assert result.tag == "v1.1.0"
        assert "Release 'v1.3.0' not found in the issue tracker" in caplog.text

    def test_no_deployable_releases(self, config, git):
        tracker = FakeTracker(releases={"1.3.0": [FakeStory(1, StoryState.STAGED)]})
        with pytest.raises(TaskError, match="no deployable releases found"):
            deploy_release(config, tracker)
        git["create_or_reset_branch"].assert_not_called()

    def test_untagged_stable_branch(self, config, git):
        git["tags_pointing_at"].return_value = []
        with pytest.raises(TaskError) as exc_info:
            deploy_release(config, accepted_tracker())
        assert "not tagged" in str(exc_info.value)
        assert "vX.Y.Z" in exc_info.value.hint

    def test_invalid_stable_tag(self, config, git):
        git["tags_pointing_at"].return_value = ["latest"]
        with pytest.raises(TaskError) as exc_info:
            deploy_release(config, accepted_tracker())
        assert "branch 'master'" in exc_info.value.hint

    def test_refuses_on_stable_branch(self, config, git):
        git["current_branch"].return_value = "master"
        with pytest.raises(TaskError, match="while on branch 'master'"):
            deploy_release(config, accepted_tracker())

    def test_explicit_release_skips_checks(self, config, git):
        git["ref_exists"].return_value = True
        tracker = accepted_tracker()

        result = deploy_release(config, tracker, DeployOptions(release=Version(1, 3, 0)))

        assert result.tag == "v1.3.0"
        assert result.released == []
        git["ref_exists"].assert_called_once_with(config.repo, "refs/tags/v1.3.0")
        git["list_release_tags"].assert_not_called()
        assert tracker.releases["1.3.0"][0].calls == []

    def test_explicit_release_must_exist(self, config, git):
        git["ref_exists"].return_value = False
        with pytest.raises(TaskError) as exc_info:
            deploy_release(config, accepted_tracker(), DeployOptions(release=Version(2, 0, 0)))
        assert isinstance(exc_info.value.cause, RefNotFoundError)

    def test_push_failure_resets_stable(self, config, git):
        git["push"].side_effect = GitCommandError(["push"], "rejected")
        with patch("builtins.input", return_value="1"):
            with pytest.raises(TaskError):
                deploy_release(config, accepted_tracker())
        assert git["log"] == ["reset master"]

    def test_tracker_failure_after_push_is_not_rolled_back(self, config, git):
        tracker = accepted_tracker()
        tracker.releases["1.1.0"][0].fail_on.add("mark_as_released")

        with patch("builtins.input", return_value="3"):
            with pytest.raises(TaskError) as exc_info:
                deploy_release(config, tracker)

        assert "#1" in str(exc_info.value)
        assert exc_info.value.hint == TRACKER_FAILED_HINT
        assert git["log"] == []
        git["push"].assert_called_once()
