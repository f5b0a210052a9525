"""Tests for trunkflow.lib.version module."""

import json
from unittest.mock import patch

import pytest

from trunkflow.action.compensations import ResetBranch
from trunkflow.git.runner import GitResult
from trunkflow.lib.config import VersionConfig
from trunkflow.lib.version import (
    Version,
    VersionError,
    parse_version_file,
    read_from_branch,
    replace_version,
    set_for_branch,
    stage_version,
    testing_version as qa_version,
    trunk_version,
)


class TestVersion:
    def test_parse(self):
        assert Version.parse("1.2.3") == Version(1, 2, 3)
        assert Version.parse("v1.2.3-dev") == Version(1, 2, 3, "dev")

    @pytest.mark.parametrize("value", ["1.2", "1.2.3.4", "x.y.z", "1.2.3-", ""])
    def test_parse_invalid(self, value):
        with pytest.raises(VersionError):
            Version.parse(value)

    def test_str(self):
        assert str(Version(1, 2, 3)) == "1.2.3"
        assert str(Version(1, 2, 3, "qa")) == "1.2.3-qa"

    def test_increments_keep_suffix(self):
        assert Version(1, 2, 3, "dev").increment_minor() == Version(1, 3, 0, "dev")
        assert Version(1, 2, 3).increment_patch() == Version(1, 2, 4)

    def test_release_tag(self):
        assert Version(1, 2, 3, "stage").release_tag() == "v1.2.3"

    def test_ordering(self):
        assert Version(1, 10, 0) > Version(1, 9, 9)

    def test_branch_suffixes(self):
        config = VersionConfig()
        base = Version(1, 2, 0)
        assert str(trunk_version(base, config)) == "1.2.0-dev"
        assert str(qa_version(base, config)) == "1.2.0-qa"
        assert str(stage_version(base, config)) == "1.2.0-stage"


class TestVersionFile:
    def test_parse_version_file(self):
        assert parse_version_file('{"name": "x", "version": "1.2.0-dev"}', "package.json") == \
            Version(1, 2, 0, "dev")

    def test_missing_key(self):
        with pytest.raises(VersionError, match="version key not found"):
            parse_version_file('{"name": "x"}', "package.json")

    def test_invalid_json(self):
        with pytest.raises(VersionError, match="invalid JSON"):
            parse_version_file("{", "package.json")

    def test_replace_keeps_formatting(self):
        content = '{\n  "name": "x",\n  "version": "1.2.0-dev",\n  "private": true\n}\n'
        updated = replace_version(content, Version(1, 3, 0, "dev"), "package.json")
        assert updated == content.replace("1.2.0-dev", "1.3.0-dev")

    def test_replace_without_field(self):
        with pytest.raises(VersionError):
            replace_version('{"name": "x"}', Version(1, 0, 0), "package.json")

    @patch("trunkflow.lib.version.git_output")
    def test_read_from_branch(self, mock_output, tmp_path):
        mock_output.return_value = json.dumps({"version": "2.0.0-qa"})
        version = read_from_branch(tmp_path, VersionConfig(), "release")
        assert version == Version(2, 0, 0, "qa")
        mock_output.assert_called_once_with(["show", "release:package.json"], tmp_path)


class TestSetForBranch:
    @patch("trunkflow.lib.version.git_output")
    @patch("trunkflow.lib.version.checkout")
    @patch("trunkflow.lib.version.hexsha", return_value="old123")
    @patch("trunkflow.lib.version.run_git")
    def test_commits_new_version(self, mock_run, mock_hexsha, mock_checkout, mock_output, tmp_path):
        mock_run.return_value = GitResult(returncode=0, stdout="", stderr="")
        (tmp_path / "package.json").write_text('{"version": "1.2.0-dev"}\n')

        action = set_for_branch(tmp_path, VersionConfig(), Version(1, 3, 0, "dev"), "develop")

        mock_checkout.assert_called_once_with(tmp_path, "develop")
        assert json.loads((tmp_path / "package.json").read_text())["version"] == "1.3.0-dev"
        mock_output.assert_any_call(["commit", "-m", "Bump version to 1.3.0-dev"], tmp_path)
        assert action == ResetBranch(tmp_path, "develop", "old123")

    @patch("trunkflow.lib.version.checkout")
    @patch("trunkflow.lib.version.run_git")
    def test_dirty_version_file(self, mock_run, mock_checkout, tmp_path):
        mock_run.return_value = GitResult(returncode=0, stdout=" M package.json\n", stderr="")
        with pytest.raises(VersionError, match="uncommitted changes"):
            set_for_branch(tmp_path, VersionConfig(), Version(1, 3, 0), "develop")
        mock_checkout.assert_not_called()
