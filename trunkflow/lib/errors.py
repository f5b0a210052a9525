"""
Error types for trunkflow.

Every failure a workflow can hit maps onto one of these. Parsing and planning
errors abort the enclosing command immediately; RollbackError signals that
manual cleanup is required.
"""

from dataclasses import dataclass, field


class TrunkflowError(Exception):
    """Base class for all trunkflow errors."""


class ParseError(TrunkflowError):
    """Malformed git log text. Aborts the whole parse."""

    def __init__(self, line_number: int, line: str, reason: str = "unexpected line"):
        self.line_number = line_number
        self.line = line
        self.reason = reason
        super().__init__(f"failed to parse git log [line {line_number}]: {reason}: {line!r}")


class DuplicateTagError(ParseError):
    """The same commit message tag appears twice within one commit."""

    def __init__(self, line_number: int, line: str, tag: str, sha: str):
        self.tag = tag
        self.sha = sha
        super().__init__(line_number, line, f"duplicate {tag} tag in commit {sha}")


class ReachabilityInconsistency(TrunkflowError):
    """Story changes are not reachable from the trunk branch.

    Carries the offending story change groups so the caller can show them.
    """

    def __init__(self, groups: list, trunk_ref: str):
        self.groups = groups
        self.trunk_ref = trunk_ref
        n = sum(len(g.changes) for g in groups)
        super().__init__(f"{n} change(s) not reachable from {trunk_ref}")


class RollbackError(TrunkflowError):
    """One or more compensations failed while unwinding an action chain."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = failures
        super().__init__(f"rollback failed ({len(failures)} compensation(s) could not be applied)")


class GitCommandError(TrunkflowError):
    """A git invocation exited non-zero or timed out."""

    def __init__(self, args: list[str], stderr: str, returncode: int = 1):
        self.args_list = args
        self.stderr = stderr
        self.returncode = returncode
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)}: {detail}")


class RefNotFoundError(TrunkflowError):
    """A required git ref does not exist."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"ref '{ref}' not found")


class OperationCanceled(TrunkflowError):
    """The operator declined a confirmation prompt."""

    def __init__(self):
        super().__init__("operation canceled")


class ConfigError(TrunkflowError):
    """Configuration file missing required data or failing validation."""


class TrackerError(TrunkflowError):
    """The issue tracker or code review tool rejected a request."""


@dataclass(eq=False)
class TaskError(TrunkflowError):
    """A workflow step failed.

    Wraps the underlying cause with the human-readable task label and an
    optional hint telling the operator how to proceed.
    """
    task: str
    cause: Exception
    hint: str = ""
    details: dict = field(default_factory=dict)

    def __post_init__(self):
        super().__init__(str(self))

    def __str__(self):
        return f"{self.task}: {self.cause}"

    def root_cause(self) -> Exception:
        """Return the deepest non-TaskError cause."""
        cause = self.cause
        while isinstance(cause, TaskError):
            cause = cause.cause
        return cause
