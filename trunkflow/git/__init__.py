"""Git operations for trunkflow.

Return type conventions:
- run_git() returns a GitResult: caller must check .success before using output.
- git_output() and the query helpers raise GitCommandError on failure.
- Functions returning bool report a condition (e.g. ref_exists()).
- Mutating helpers in git.branch and git.tag return the Action undoing them.

Only the modules without Action dependencies are re-exported here; import
git.branch, git.remote, git.tag and git.sources directly.
"""

from trunkflow.git.runner import (
    GitResult,
    run_git,
    git_output,
)
from trunkflow.git.commit import (
    Commit,
    story_ids,
    format_commit,
)
from trunkflow.git.log_parse import (
    parse_commits,
)
from trunkflow.git.log import (
    grep_commits,
    show_commits,
    show_commit_range,
    reachable_shas,
)

__all__ = [
    # runner
    "GitResult",
    "run_git",
    "git_output",
    # commit
    "Commit",
    "story_ids",
    "format_commit",
    # log_parse
    "parse_commits",
    # log
    "grep_commits",
    "show_commits",
    "show_commit_range",
    "reachable_shas",
]
