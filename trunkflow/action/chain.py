"""
Compensating action chain.

Every mutating workflow step returns an Action that undoes it. The steps push
their actions onto an ActionChain; when a later step fails the chain is
unwound in reverse order.

Usage:
    chain = ActionChain()
    with chain.rollback_on_error():
        act = create_branch(repo, "release", "develop")
        chain.push_task("Create branch 'release'", act)
        ...
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Protocol, runtime_checkable

from trunkflow.lib.errors import RollbackError

logger = logging.getLogger(__name__)


@runtime_checkable
class Action(Protocol):
    """Something that can be undone. rollback() raises on failure."""

    def rollback(self) -> None: ...


class _Noop:
    def rollback(self) -> None:
        pass

    def describe(self) -> str:
        return "nothing to undo"


NOOP = _Noop()


def describe(action: Action) -> str:
    describe_fn = getattr(action, "describe", None)
    if callable(describe_fn):
        return describe_fn()
    return repr(action)


@dataclass
class ActionRecord:
    action: Action
    task: str | None = None


class ActionChain:
    """Ordered list of compensations, rolled back last-in first-out."""

    def __init__(self):
        self.records: list[ActionRecord] = []

    def __len__(self) -> int:
        return len(self.records)

    def push(self, action: Action | None) -> None:
        self.push_task(None, action)

    def push_task(self, task: str | None, action: Action | None) -> None:
        # None stands for a step with nothing to undo
        if action is None:
            return
        self.records.append(ActionRecord(action=action, task=task))

    def describe(self) -> list[str]:
        """Summaries of the pending compensations, next to run first."""
        lines = []
        for record in reversed(self.records):
            summary = describe(record.action)
            lines.append(f"{record.task}: {summary}" if record.task else summary)
        return lines

    def clear(self) -> None:
        self.records = []

    def rollback(self) -> None:
        """Run every compensation in reverse order.

        All compensations are attempted even when some fail. The chain is
        empty afterwards.

        Raises:
            RollbackError: listing every compensation that failed
        """
        records, self.records = self.records, []
        failures: list[tuple[str, Exception]] = []

        for record in reversed(records):
            label = record.task or describe(record.action)
            if record.task:
                logger.warning(f"Rollback: {record.task}")
            try:
                record.action.rollback()
            except Exception as e:
                logger.error(f"Rollback failed: {label}: {e}")
                failures.append((label, e))

        if failures:
            raise RollbackError(failures)

    @contextmanager
    def rollback_on_error(self) -> Iterator["ActionChain"]:
        """Roll the chain back if the block raises, then re-raise.

        The exception is inspected when the block exits, so failures raised
        after any number of later steps still trigger the rollback. A failed
        rollback is attached to the original exception as its context.
        """
        try:
            yield self
        except BaseException as err:
            try:
                self.rollback()
            except RollbackError as rollback_err:
                logger.error(str(rollback_err))
                raise err from rollback_err
            raise


@contextmanager
def rollback_task_on_error(task: str | None, action: Action) -> Iterator[None]:
    """Undo a single action if the block raises."""
    chain = ActionChain()
    chain.push_task(task, action)
    with chain.rollback_on_error():
        yield
