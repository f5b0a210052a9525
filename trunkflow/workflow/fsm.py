"""Release workflow state machine using transitions library.

Each release command walks a fixed, linear list of states. The single
`advance` trigger moves to the next one; `fail` records where the workflow
stopped.

Usage:
    from trunkflow.workflow.fsm import ReleaseFSM, STAGE_STATES

    fsm = ReleaseFSM("stage", STAGE_STATES)
    fsm.advance_to("remote_fetched")
    ...
    fsm.advance_to("done")
"""

import logging
from typing import Callable

from transitions import Machine

logger = logging.getLogger(__name__)

FAILED = "failed"

START_STATES = [
    "not_started",
    "remote_fetched",
    "branches_checked",
    "stories_collected",
    "release_branch_created",
    "trunk_version_bumped",
    "issue_tracker_started",
    "pushed",
    "done",
]

STAGE_STATES = [
    "not_started",
    "remote_fetched",
    "story_state_validated",
    "staging_branch_reset",
    "release_branch_deleted",
    "version_bumped",
    "release_tagged",
    "code_review_finalised",
    "issue_tracker_staged",
    "pushed",
    "done",
]

DEPLOY_STATES = [
    "not_started",
    "release_selected",
    "stable_branch_reset",
    "pushed",
    "issue_tracker_released",
    "done",
]

CHERRY_PICK_STATES = [
    "not_started",
    "remote_fetched",
    "branches_checked",
    "changes_planned",
    "trunk_reachability_verified",
    "confirmed",
    "cherry_picked",
    "done",
]


class InvalidTransition(Exception):
    """Raised when a workflow tries to skip or repeat a state."""

    def __init__(self, workflow: str, from_state: str, to_state: str):
        self.workflow = workflow
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state} -> {to_state} (workflow: {workflow})")


def build_transitions(states: list[str]) -> list[dict]:
    """Linear `advance` chain plus `fail` from every non-terminal state."""
    transitions = [
        {"trigger": "advance", "source": source, "dest": dest}
        for source, dest in zip(states, states[1:])
    ]
    transitions.append({"trigger": "fail", "source": states[:-1], "dest": FAILED})
    return transitions


class ReleaseFSM:
    """State machine for one release command run.

    Not persisted: a command that fails is simply run again.
    """

    def __init__(
        self,
        workflow: str,
        states: list[str],
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """
        Args:
            workflow: Command name used in log messages
            states: Ordered states, first is initial, last is terminal
            on_transition: Optional callback(from_state, to_state, trigger)
        """
        self.workflow = workflow
        self.states = list(states)
        self.on_transition = on_transition
        self.failed_at: str | None = None

        self.machine = Machine(
            model=self,
            states=self.states + [FAILED],
            transitions=build_transitions(self.states),
            initial=self.states[0],
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        if to_state == FAILED:
            self.failed_at = from_state
            logger.warning(f"[FSM] {self.workflow}: failed in state {from_state}")
        else:
            logger.info(f"[FSM] {self.workflow}: {from_state} -> {to_state}")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def next_state(self) -> str | None:
        if self.state not in self.states:
            return None
        index = self.states.index(self.state)
        return self.states[index + 1] if index + 1 < len(self.states) else None

    def advance_to(self, state: str) -> None:
        """Advance, checking that state is the next one in order."""
        if self.next_state() != state:
            raise InvalidTransition(self.workflow, self.state, state)
        self.advance()

    @property
    def finished(self) -> bool:
        return self.state == self.states[-1]

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)
