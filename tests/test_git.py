"""Tests for trunkflow.git module."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from trunkflow.action.compensations import DeleteBranch, DeleteTag, ResetBranch
from trunkflow.git.branch import (
    BranchRef,
    check_or_create_tracking_branch,
    create_branch,
    create_or_reset_branch,
    current_branch,
    ensure_branch_not_exists,
    ensure_clean_working_tree,
    hexsha,
)
from trunkflow.git.commit import story_ids
from trunkflow.git.log import grep_commits, show_commit_range, show_commits
from trunkflow.git.remote import cherry_pick, push, update_remotes
from trunkflow.git.runner import GitResult, git_output, repository_root, run_git
from trunkflow.git.tag import commits_since_last_release, create_tag, list_release_tags
from trunkflow.lib.errors import GitCommandError, RefNotFoundError, TrunkflowError

REPO = Path("/repo")


def ok(stdout=""):
    return GitResult(returncode=0, stdout=stdout, stderr="")


def failed(stderr="fatal"):
    return GitResult(returncode=1, stdout="", stderr=stderr)


class TestGitResult:
    """Test GitResult dataclass."""

    def test_success_when_returncode_zero(self):
        assert GitResult(returncode=0, stdout="ok", stderr="").success is True

    def test_failure_when_returncode_nonzero(self):
        assert GitResult(returncode=1, stdout="", stderr="error").success is False

    def test_failure_when_timed_out(self):
        assert GitResult(returncode=0, stdout="ok", stderr="", timed_out=True).success is False


class TestRunGit:
    """Test run_git function."""

    @patch("trunkflow.git.runner.subprocess.run")
    def test_returns_result_on_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="output", stderr="")
        result = run_git(["status"], REPO)
        assert result.success
        assert result.stdout == "output"
        mock_run.assert_called_once()

    @patch("trunkflow.git.runner.subprocess.run")
    def test_handles_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=30)
        result = run_git(["status"], REPO, timeout=30)
        assert not result.success
        assert result.timed_out
        assert "timed out" in result.stderr

    @patch("trunkflow.git.runner.subprocess.run")
    def test_blocks_without_timeout_by_default(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        run_git(["cherry-pick", "abc"], REPO)
        git_output(["push", "origin", "release"], REPO)
        assert [c[1]["timeout"] for c in mock_run.call_args_list] == [None, None]

    @patch("trunkflow.git.runner.subprocess.run")
    def test_repository_root(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="/repo\n", stderr="")
        assert repository_root(Path("/repo/sub/dir")) == Path("/repo")
        assert mock_run.call_args[0][0][-2:] == ["rev-parse", "--show-toplevel"]
        assert mock_run.call_args[0][0][3] == "/repo/sub/dir"

    @patch("trunkflow.git.runner.subprocess.run")
    def test_repository_root_outside_repo(self, mock_run):
        mock_run.return_value = MagicMock(returncode=128, stdout="",
                                          stderr="fatal: not a git repository")
        with pytest.raises(GitCommandError):
            repository_root(Path("/tmp"))

    @patch("trunkflow.git.runner.subprocess.run")
    def test_passes_repo_with_C_flag(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        run_git(["log", "--source"], Path("/my/repo"))
        assert mock_run.call_args[0][0] == ["git", "--no-pager", "-C", "/my/repo", "log", "--source"]

    @patch("trunkflow.git.runner.subprocess.run")
    def test_never_prompts(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        run_git(["fetch", "origin"], REPO)
        assert mock_run.call_args[1]["env"]["GIT_TERMINAL_PROMPT"] == "0"

    @patch("trunkflow.git.runner.subprocess.run")
    def test_missing_git(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        with pytest.raises(GitCommandError, match="not found"):
            run_git(["status"], REPO)

    @patch("trunkflow.git.runner.run_git")
    def test_git_output_raises_on_failure(self, mock_run):
        mock_run.return_value = failed("fatal: bad revision")
        with pytest.raises(GitCommandError) as exc_info:
            git_output(["log", "nope"], REPO)
        assert "bad revision" in str(exc_info.value)
        assert exc_info.value.args_list == ["log", "nope"]


class TestBranchRef:
    @patch("trunkflow.git.branch.run_git")
    def test_up_to_date_compares_hashes(self, mock_run):
        mock_run.side_effect = [ok("aaa\n"), ok("aaa\n")]
        ref = BranchRef(name="develop", remote="origin", remote_name="develop")
        assert ref.is_up_to_date(REPO)
        assert ref.remote_ref == "refs/remotes/origin/develop"
        assert ref.canonical_name == "develop"

    @patch("trunkflow.git.branch.run_git")
    def test_diverged(self, mock_run):
        mock_run.side_effect = [ok("aaa\n"), ok("bbb\n")]
        assert not BranchRef("develop", "origin", "develop").is_up_to_date(REPO)

    def test_local_only_is_up_to_date(self):
        assert BranchRef(name="topic").is_up_to_date(REPO)

    def test_remote_only_canonical_name(self):
        assert BranchRef(remote="origin", remote_name="release").canonical_name == "origin/release"


class TestBranchQueries:
    @patch("trunkflow.git.branch.run_git")
    def test_current_branch(self, mock_run):
        mock_run.return_value = ok("develop\n")
        assert current_branch(REPO) == "develop"

    @patch("trunkflow.git.branch.run_git")
    def test_current_branch_detached(self, mock_run):
        mock_run.return_value = failed()
        assert current_branch(REPO) is None

    @patch("trunkflow.git.branch.run_git")
    def test_hexsha_missing_ref(self, mock_run):
        mock_run.return_value = failed()
        with pytest.raises(RefNotFoundError):
            hexsha(REPO, "refs/heads/nope")

    @patch("trunkflow.git.branch.run_git")
    def test_ensure_branch_not_exists_remote(self, mock_run):
        # Local missing, remote present
        mock_run.side_effect = [failed(), ok()]
        with pytest.raises(TrunkflowError, match="already exists in remote 'origin'"):
            ensure_branch_not_exists(REPO, "release", "origin")

    @patch("trunkflow.git.branch.run_git")
    def test_ensure_clean_working_tree(self, mock_run):
        mock_run.return_value = ok(" M package.json\n")
        with pytest.raises(TrunkflowError, match="uncommitted changes"):
            ensure_clean_working_tree(REPO)


class TestTrackingBranch:
    @patch("trunkflow.git.branch.git_output")
    @patch("trunkflow.git.branch.run_git")
    def test_creates_missing_local_branch(self, mock_run, mock_output):
        mock_run.side_effect = [failed(), ok()]  # local missing, remote present
        check_or_create_tracking_branch(REPO, "release", "origin")
        mock_output.assert_called_once_with(["branch", "--track", "release", "origin/release"], REPO)

    @patch("trunkflow.git.branch.run_git")
    def test_missing_everywhere(self, mock_run):
        mock_run.return_value = failed()
        with pytest.raises(RefNotFoundError):
            check_or_create_tracking_branch(REPO, "release", "origin")

    @patch("trunkflow.git.branch.run_git")
    def test_out_of_sync(self, mock_run):
        # local exists, remote exists, hashes differ
        mock_run.side_effect = [ok(), ok(), ok("aaa\n"), ok("bbb\n")]
        with pytest.raises(TrunkflowError, match="not up to date"):
            check_or_create_tracking_branch(REPO, "develop", "origin")


class TestBranchMutations:
    @patch("trunkflow.git.branch.git_output")
    def test_create_branch_returns_delete(self, mock_output):
        action = create_branch(REPO, "release", "develop")
        mock_output.assert_called_once_with(["branch", "release", "develop"], REPO)
        assert action == DeleteBranch(REPO, "release")

    @patch("trunkflow.git.branch.git_output")
    @patch("trunkflow.git.branch.run_git")
    def test_create_or_reset_new_branch(self, mock_run, mock_output):
        mock_run.return_value = failed()
        action = create_or_reset_branch(REPO, "stage", "release")
        assert action == DeleteBranch(REPO, "stage")

    @patch("trunkflow.git.branch.git_output")
    @patch("trunkflow.git.branch.run_git")
    def test_create_or_reset_existing_branch(self, mock_run, mock_output):
        # exists, rev-parse, current branch
        mock_run.side_effect = [ok(), ok("old123\n"), ok("develop\n")]
        action = create_or_reset_branch(REPO, "stage", "release")
        mock_output.assert_called_once_with(["branch", "-f", "stage", "release"], REPO)
        assert action == ResetBranch(REPO, "stage", "old123")

    @patch("trunkflow.git.branch.git_output")
    @patch("trunkflow.git.branch.run_git")
    def test_create_or_reset_checked_out_branch(self, mock_run, mock_output):
        mock_run.side_effect = [ok(), ok("old123\n"), ok("stage\n")]
        create_or_reset_branch(REPO, "stage", "release")
        mock_output.assert_called_once_with(["reset", "--keep", "release"], REPO)


class TestRemote:
    @patch("trunkflow.git.remote.git_output")
    def test_update_remotes(self, mock_output):
        update_remotes(REPO, "origin")
        mock_output.assert_called_once_with(["remote", "update", "--prune", "origin"], REPO)

    @patch("trunkflow.git.remote.git_output")
    def test_force_push(self, mock_output):
        push(REPO, "origin", ":release", "stage:stage", force=True)
        assert mock_output.call_args[0][0] == ["push", "-f", "origin", ":release", "stage:stage"]

    @patch("trunkflow.git.remote.git_output")
    def test_cherry_pick_nothing(self, mock_output):
        cherry_pick(REPO)
        mock_output.assert_not_called()

    @patch("trunkflow.git.remote.git_output")
    def test_cherry_pick_in_order(self, mock_output):
        cherry_pick(REPO, "a1", "b2")
        mock_output.assert_called_once_with(["cherry-pick", "a1", "b2"], REPO)


class TestTags:
    @patch("trunkflow.git.tag.git_output")
    def test_list_release_tags_sorted_by_version(self, mock_output):
        mock_output.return_value = "v1.10.0\nv1.2.0\nv1.9.3\nvbogus.x.y\n"
        assert list_release_tags(REPO) == ["v1.2.0", "v1.9.3", "v1.10.0"]

    @patch("trunkflow.git.tag.git_output")
    def test_create_annotated_tag(self, mock_output):
        action = create_tag(REPO, "v1.2.0", "stage", "Release 1.2.0")
        mock_output.assert_called_once_with(["tag", "-a", "-m", "Release 1.2.0", "v1.2.0", "stage"], REPO)
        assert action == DeleteTag(REPO, "v1.2.0")

    @patch("trunkflow.git.tag.show_commit_range")
    @patch("trunkflow.git.tag.git_output")
    def test_commits_since_last_release(self, mock_output, mock_range):
        mock_output.return_value = "v1.0.0\nv1.1.0\n"
        commits_since_last_release(REPO, "develop")
        mock_range.assert_called_once_with(REPO, "v1.1.0..develop")

    @patch("trunkflow.git.tag.show_commit_range")
    @patch("trunkflow.git.tag.git_output")
    def test_commits_since_last_release_without_tags(self, mock_output, mock_range):
        mock_output.return_value = ""
        commits_since_last_release(REPO, "develop")
        mock_range.assert_called_once_with(REPO, "develop")


LOG_OUTPUT = """\
commit 3c4d5e6 refs/heads/develop
Author:     Jane Doe <jane@example.com>
AuthorDate: Tue Mar 3 10:00:00 2015 +0100
Commit:     Jane Doe <jane@example.com>
CommitDate: Tue Mar 3 10:05:00 2015 +0100

    Fix the login form

    Story-Id: acme/widgets#12
"""


class TestLog:
    @patch("trunkflow.git.log.git_output")
    def test_grep_searches_all_refs(self, mock_output):
        mock_output.return_value = LOG_OUTPUT
        commits = grep_commits(REPO, "^Story-Id: (x)$")
        args = mock_output.call_args[0][0]
        assert args[:4] == ["log", "--source", "--abbrev-commit", "--pretty=fuller"]
        assert "--grep=^Story-Id: (x)$" in args
        assert "--regexp-ignore-case" in args
        assert args[-1] == "--all"
        assert story_ids(commits) == ["acme/widgets#12"]

    @patch("trunkflow.git.log.git_output")
    def test_show_commits_without_revisions(self, mock_output):
        assert show_commits(REPO) == []
        mock_output.assert_not_called()

    @patch("trunkflow.git.log.git_output")
    def test_show_commit_range(self, mock_output):
        mock_output.return_value = LOG_OUTPUT
        commits = show_commit_range(REPO, "develop..release")
        assert mock_output.call_args[0][0][-1] == "develop..release"
        assert commits[0].sha == "3c4d5e6"


class TestStoryIds:
    def test_unique_in_order_without_unassigned(self, make_commit):
        commits = [
            make_commit("a", story_id="s2"),
            make_commit("b", story_id="unassigned"),
            make_commit("c", story_id="s1"),
            make_commit("d", story_id="s2"),
            make_commit("e"),
        ]
        assert story_ids(commits) == ["s2", "s1"]
