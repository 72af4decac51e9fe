"""Loop state machine using the transitions library.

One LoopFSM per controller run. The controller fires triggers; the
machine only guarantees that the sequence of states is legal and logs
every transition. Nothing is persisted here: what survives a restart is
the session file, and a restarted loop always begins in selecting_item.

Usage:
    from sonata.workflow.fsm import LoopFSM

    fsm = LoopFSM()
    fsm.item_selected()   # selecting_item -> awaiting_agent
    fsm.agent_returned()  # awaiting_agent -> processing_result
"""

import logging
from enum import Enum
from typing import Callable

from transitions import Machine

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    SELECTING_ITEM = "selecting_item"
    AWAITING_AGENT = "awaiting_agent"
    PROCESSING_RESULT = "processing_result"
    CONTINUING = "continuing"
    COMPLETED = "completed"
    CHECKPOINT_PAUSED = "checkpoint_paused"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    USER_CANCELLED = "user_cancelled"
    FAILED = "failed"
    NO_WORK_AVAILABLE = "no_work_available"


STATES = [s.value for s in LoopState]

# States the loop can stop in. completed is left again only when chaining,
# checkpoint_paused only when a human answers.
STOP_STATES = {
    LoopState.COMPLETED,
    LoopState.CHECKPOINT_PAUSED,
    LoopState.MAX_ITERATIONS_REACHED,
    LoopState.USER_CANCELLED,
    LoopState.FAILED,
    LoopState.NO_WORK_AVAILABLE,
}

TRANSITIONS = [
    # Selection
    {"trigger": "item_selected", "source": "selecting_item", "dest": "awaiting_agent"},
    {"trigger": "no_work", "source": "selecting_item", "dest": "no_work_available"},
    {"trigger": "item_unreadable", "source": "selecting_item", "dest": "failed"},

    # Agent turn
    {"trigger": "agent_returned", "source": "awaiting_agent", "dest": "processing_result"},
    {"trigger": "agent_failed", "source": "awaiting_agent", "dest": "failed"},

    # Interpreting output (checkpoint, then completion, then plain progress)
    {"trigger": "checkpoint", "source": "processing_result", "dest": "checkpoint_paused"},
    {"trigger": "complete", "source": "processing_result", "dest": "completed"},
    {"trigger": "iteration_done", "source": "processing_result", "dest": "continuing"},
    {"trigger": "budget_spent", "source": "processing_result", "dest": "max_iterations_reached"},

    # Human in the loop
    {"trigger": "feedback_received", "source": "checkpoint_paused", "dest": "awaiting_agent"},
    {"trigger": "cancel", "source": "checkpoint_paused", "dest": "user_cancelled"},
    {"trigger": "cancel", "source": "continuing", "dest": "user_cancelled"},

    # Next pass
    {"trigger": "resume", "source": "continuing", "dest": "awaiting_agent"},
    {"trigger": "next_item", "source": "completed", "dest": "selecting_item"},
]


class LoopFSM:
    """State machine for one loop run.

    Attributes:
        history: (from_state, to_state, trigger) for every transition taken
    """

    def __init__(self, label: str = "loop",
                 on_transition: Callable[[str, str, str], None] | None = None):
        self.label = label
        self.on_transition = on_transition
        self.history: list[tuple[str, str, str]] = []

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=LoopState.SELECTING_ITEM.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    @property
    def current(self) -> LoopState:
        return LoopState(self.state)

    @property
    def is_stopped(self) -> bool:
        return self.current in STOP_STATES

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[LOOP] {self.label}: {from_state} -> {to_state} ({trigger})")
        self.history.append((from_state, to_state, trigger))

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)
