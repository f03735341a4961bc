"""Payout status transitions"""

from payout_engine.domain.exceptions import InvalidTransitionError
from payout_engine.domain.models import PayoutStatus

ALLOWED = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.FAILED, PayoutStatus.CANCELLED},
    PayoutStatus.PROCESSING: {
        PayoutStatus.COMPLETED,
        PayoutStatus.FAILED,
        PayoutStatus.CANCELLED,
        PayoutStatus.REFUNDED,
    },
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.FAILED: set(),
    PayoutStatus.CANCELLED: set(),
    PayoutStatus.REFUNDED: set(),
}


def can_transition(from_status: PayoutStatus, to_status: PayoutStatus) -> bool:
    from_status = PayoutStatus(from_status)
    to_status = PayoutStatus(to_status)
    if from_status == to_status:
        return not from_status.is_terminal
    return to_status in ALLOWED[from_status]


def assert_transition(from_status: PayoutStatus, to_status: PayoutStatus) -> None:
    """
    Raise unless `from_status -> to_status` is allowed.

    A same-status update is accepted for non-terminal statuses so that
    provider linkage can be written without changing state.

    Raises:
        InvalidTransitionError: If the transition would leave a terminal status
            or skip backwards
    """
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(PayoutStatus(from_status).value, PayoutStatus(to_status).value)
