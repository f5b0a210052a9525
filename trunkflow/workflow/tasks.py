"""Step runner shared by the release commands.

A ReleaseRun bundles the state machine and the action chain of one command
invocation. Steps are labelled with the task shown to the operator; failures
are wrapped in TaskError carrying that label.

Usage:
    run = ReleaseRun(config, "stage", STAGE_STATES)
    with run.running():
        with run.step("Fetch the remote repository", "remote_fetched"):
            update_remotes(repo, remote)
        with run.step("Reset branch 'stage'", "staging_branch_reset") as task:
            run.chain.push_task(task, create_or_reset_branch(repo, "stage", "release"))
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from trunkflow.action.chain import ActionChain
from trunkflow.git.branch import checkout, current_branch
from trunkflow.lib.config import Config
from trunkflow.lib.errors import TaskError, TrunkflowError
from trunkflow.workflow.fsm import ReleaseFSM

logger = logging.getLogger(__name__)


class ReleaseRun:
    def __init__(self, config: Config, workflow: str, states: list[str]):
        self.config = config
        self.repo = config.repo
        self.fsm = ReleaseFSM(workflow, states)
        self.chain = ActionChain()
        self.original_branch: str | None = None
        self.restore_branch = True

    @contextmanager
    def step(self, task: str, state: str | None = None, hint: str = "") -> Iterator[str]:
        """Run one task, advancing to state when it succeeds."""
        logger.info(f"Run: {task}")
        try:
            yield task
        except TaskError:
            raise
        except (TrunkflowError, OSError) as e:
            raise TaskError(task, e, hint) from e
        if state is not None:
            self.fsm.advance_to(state)

    def advance(self, state: str) -> None:
        self.fsm.advance_to(state)

    def restore_original_branch(self) -> None:
        if not self.restore_branch or not self.original_branch:
            return
        if current_branch(self.repo) == self.original_branch:
            return
        task = f"Checkout the original branch ({self.original_branch})"
        logger.info(f"Run: {task}")
        try:
            checkout(self.repo, self.original_branch)
        except TrunkflowError as e:
            logger.error(f"{task}: {e}")

    @contextmanager
    def running(self) -> Iterator["ReleaseRun"]:
        """Wrap the whole command.

        On failure the state machine is marked failed, the original branch is
        checked out again and the chain is rolled back, in that order. On
        success the chain is discarded.
        """
        self.original_branch = current_branch(self.repo)
        with self.chain.rollback_on_error():
            try:
                yield self
            except BaseException:
                if self.fsm.can("fail"):
                    self.fsm.fail()
                raise
            finally:
                self.restore_original_branch()
        self.chain.clear()
