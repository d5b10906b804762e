"""Per-(step, user) submission state machine.

NOT_STARTED -> PENDING -> APPROVED | REJECTED, REJECTED -> PENDING.
APPROVED is terminal. NOT_STARTED is never stored: it is the absence of a
step_submissions row.
"""

from __future__ import annotations

import enum

from questhub.errors import AlreadyApproved, AlreadyPending, InvalidState


class SubmissionStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


VALID_TRANSITIONS: dict[SubmissionStatus, list[SubmissionStatus]] = {
    SubmissionStatus.NOT_STARTED: [SubmissionStatus.PENDING],
    SubmissionStatus.PENDING: [SubmissionStatus.APPROVED, SubmissionStatus.REJECTED],
    SubmissionStatus.REJECTED: [SubmissionStatus.PENDING],
    SubmissionStatus.APPROVED: [],
}


def can_transition(current: SubmissionStatus | str, target: SubmissionStatus | str) -> bool:
    return SubmissionStatus(target) in VALID_TRANSITIONS[SubmissionStatus(current)]


def validate_transition(current: SubmissionStatus | str, target: SubmissionStatus | str) -> None:
    """Raise if ``current -> target`` is not a legal move.

    Submitting again while PENDING or after APPROVED raises the specific
    AlreadyPending / AlreadyApproved errors users see.
    """
    current = SubmissionStatus(current)
    target = SubmissionStatus(target)
    if target in VALID_TRANSITIONS[current]:
        return

    if target is SubmissionStatus.PENDING:
        if current is SubmissionStatus.PENDING:
            raise AlreadyPending()
        if current is SubmissionStatus.APPROVED:
            raise AlreadyApproved()

    valid = [s.value for s in VALID_TRANSITIONS[current]]
    raise InvalidState(f"Invalid transition: {current.value} -> {target.value}. Valid transitions: {valid}")
