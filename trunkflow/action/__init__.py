"""Compensating actions and the chain that unwinds them."""

from trunkflow.action.chain import (
    Action,
    ActionChain,
    ActionRecord,
    NOOP,
    describe,
    rollback_task_on_error,
)
from trunkflow.action.compensations import (
    DeleteBranch,
    DeleteTag,
    RecreateBranch,
    ReportOnly,
    ResetBranch,
    RevertIssueTrackerTransition,
)

__all__ = [
    # chain
    "Action",
    "ActionChain",
    "ActionRecord",
    "NOOP",
    "describe",
    "rollback_task_on_error",
    # compensations
    "DeleteBranch",
    "DeleteTag",
    "RecreateBranch",
    "ReportOnly",
    "ResetBranch",
    "RevertIssueTrackerTransition",
]
