"""
Grading Status State Machine

Explicit transition table for a submission's grading_status.

State Flow:
    pending → grading → graded
    pending → graded            (finalized in one step)
    auto_graded                 (set at creation, never entered later)

graded and auto_graded are terminal. There is no regrade and no
grading → pending give-back.
"""
import logging
from typing import Dict, FrozenSet, List

from grading_engine.errors import ErrorCode, StateError
from grading_engine.orm.submission import GradingStatus

logger = logging.getLogger(__name__)


class GradingStateMachine:
    """Transition rules for GradingStatus. Holds no state of its own."""

    # Valid state transitions: {current_state: [allowed_next_states]}
    ALLOWED_TRANSITIONS: Dict[GradingStatus, List[GradingStatus]] = {
        GradingStatus.PENDING: [GradingStatus.GRADING, GradingStatus.GRADED],
        GradingStatus.GRADING: [GradingStatus.GRADED],
        GradingStatus.GRADED: [],
        GradingStatus.AUTO_GRADED: [],
    }

    # States a submission may be created in
    INITIAL_STATES: FrozenSet[GradingStatus] = frozenset({
        GradingStatus.PENDING,
        GradingStatus.AUTO_GRADED,
    })

    # Awaiting instructor work
    OPEN_STATES: FrozenSet[GradingStatus] = frozenset({
        GradingStatus.PENDING,
        GradingStatus.GRADING,
    })

    TERMINAL_STATES: FrozenSet[GradingStatus] = frozenset(
        state for state, targets in ALLOWED_TRANSITIONS.items() if not targets
    )

    @classmethod
    def is_valid_transition(cls, current: GradingStatus, new: GradingStatus) -> bool:
        """Check if state transition is valid."""
        return new in cls.ALLOWED_TRANSITIONS[current]

    @classmethod
    def is_terminal(cls, status: GradingStatus) -> bool:
        return status in cls.TERMINAL_STATES

    @classmethod
    def sources_for(cls, target: GradingStatus) -> List[GradingStatus]:
        """States from which target is reachable, used as the compare-and-set guard."""
        return [
            state for state, targets in cls.ALLOWED_TRANSITIONS.items()
            if target in targets
        ]

    @classmethod
    def assert_transition(cls, submission_id: int, current: GradingStatus, new: GradingStatus) -> None:
        """
        Raise StateError unless current → new is allowed.

        Terminal sources get a dedicated code so callers can tell
        "already graded" apart from an out-of-order request.
        """
        if cls.is_valid_transition(current, new):
            return

        logger.warning(
            f"Rejected grading transition {current.value} → {new.value} for submission {submission_id}"
        )
        if cls.is_terminal(current):
            raise StateError(
                f"Submission {submission_id} is already {current.value} and cannot be graded again",
                code=ErrorCode.ALREADY_GRADED,
                details={"current_state": current.value, "requested_state": new.value},
            )
        raise StateError(
            f"Invalid transition: {current.value} → {new.value}",
            details={"current_state": current.value, "requested_state": new.value},
        )


# Every status must appear in the table
assert set(GradingStateMachine.ALLOWED_TRANSITIONS) == set(GradingStatus), \
    "GradingStateMachine.ALLOWED_TRANSITIONS must cover every GradingStatus"
