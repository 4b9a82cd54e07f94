"""
Receiving Workflows.

State machine for saving a receipt note, with the optional return note for
under-delivered items.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.workflows")


class SaveState(str, Enum):
    EDITING = "editing"
    SAVING_RECEIPT = "saving_receipt"
    AWAITING_SHORTFALL_DECISION = "awaiting_shortfall_decision"
    CREATING_RETURN_NOTE = "creating_return_note"
    DONE = "done"
    ERROR = "error"


TERMINAL_STATES = frozenset({SaveState.DONE, SaveState.ERROR})


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: SaveState
    to_state: SaveState
    action: str
    guard: Guard | None = None
    persists: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: SaveState
    states: tuple[SaveState, ...]
    transitions: tuple[Transition, ...]

    def find_transition(self, current_state: SaveState, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        return None


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SHORTFALL_REMAINS = Guard(
    name="shortfall_remains",
    description="At least one item is still short after existing returns",
)

NOTHING_SHORT = Guard(
    name="nothing_short",
    description="No item is short, or existing returns already cover it",
)


# -----------------------------------------------------------------------------
# Receipt Save Workflow
# -----------------------------------------------------------------------------

RECEIPT_SAVE_WORKFLOW = Workflow(
    name="receipt_save",
    description="Save a receipt note and optionally raise a return note",
    initial_state=SaveState.EDITING,
    states=tuple(SaveState),
    transitions=(
        Transition(SaveState.EDITING, SaveState.SAVING_RECEIPT, action="save"),
        Transition(SaveState.SAVING_RECEIPT, SaveState.ERROR, action="fail"),
        Transition(SaveState.SAVING_RECEIPT, SaveState.DONE, action="receipt_saved", guard=NOTHING_SHORT, persists=True),
        Transition(
            SaveState.SAVING_RECEIPT,
            SaveState.AWAITING_SHORTFALL_DECISION,
            action="receipt_saved_with_shortfall",
            guard=SHORTFALL_REMAINS,
            persists=True,
        ),
        Transition(SaveState.AWAITING_SHORTFALL_DECISION, SaveState.DONE, action="save_as_open"),
        Transition(SaveState.AWAITING_SHORTFALL_DECISION, SaveState.CREATING_RETURN_NOTE, action="raise_return_note"),
        Transition(SaveState.AWAITING_SHORTFALL_DECISION, SaveState.ERROR, action="fail"),
        Transition(SaveState.CREATING_RETURN_NOTE, SaveState.DONE, action="return_note_saved", persists=True),
        Transition(SaveState.CREATING_RETURN_NOTE, SaveState.ERROR, action="fail"),
    ),
)

logger.info(
    "receiving_save_workflow_registered",
    extra={
        "workflow_name": RECEIPT_SAVE_WORKFLOW.name,
        "state_count": len(RECEIPT_SAVE_WORKFLOW.states),
        "transition_count": len(RECEIPT_SAVE_WORKFLOW.transitions),
        "initial_state": RECEIPT_SAVE_WORKFLOW.initial_state.value,
    },
)


class SaveRun:
    """
    One save attempt walking RECEIPT_SAVE_WORKFLOW.

    Raises ValueError for an action that has no transition from the
    current state. Terminal states accept nothing.
    """

    def __init__(self, workflow: Workflow = RECEIPT_SAVE_WORKFLOW):
        self._workflow = workflow
        self._state = workflow.initial_state
        self._trail: list[SaveState] = [self._state]

    @property
    def state(self) -> SaveState:
        return self._state

    @property
    def trail(self) -> tuple[SaveState, ...]:
        return tuple(self._trail)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def fire(self, action: str) -> SaveState:
        transition = self._workflow.find_transition(self._state, action)
        if transition is None:
            raise ValueError(
                f"No '{action}' transition from {self._state.value} in {self._workflow.name}"
            )
        logger.info("save_workflow_transition", extra={
            "workflow": self._workflow.name,
            "action": action,
            "from_state": self._state.value,
            "to_state": transition.to_state.value,
            "guard": transition.guard.name if transition.guard else None,
        })
        self._state = transition.to_state
        self._trail.append(self._state)
        return self._state
