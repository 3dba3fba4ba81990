"""
Leave request state machine.

pending   -> approved | rejected | cancelled | escalated
escalated -> approved | rejected
approved, rejected and cancelled are terminal.
"""
import logging

from leave_engine.core.exceptions import InvalidStateTransition
from leave_engine.models.leave_request import LeaveRequest, LeaveStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    LeaveStatus.PENDING: {
        LeaveStatus.APPROVED, LeaveStatus.REJECTED, LeaveStatus.CANCELLED, LeaveStatus.ESCALATED,
    },
    LeaveStatus.ESCALATED: {LeaveStatus.APPROVED, LeaveStatus.REJECTED},
    LeaveStatus.APPROVED: set(),
    LeaveStatus.REJECTED: set(),
    LeaveStatus.CANCELLED: set(),
}


def can_transition(current: str, target: LeaveStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(LeaveStatus(current), set())


def ensure_transition(request: LeaveRequest, target: LeaveStatus) -> None:
    if not can_transition(request.status, target):
        raise InvalidStateTransition(current=request.status, target=target.value)


def transition(request: LeaveRequest, target: LeaveStatus) -> None:
    ensure_transition(request, target)
    previous = request.status
    request.status = target.value
    logger.info(
        f"Leave request {request.id}: {previous} -> {target.value}",
        extra={"leave_request_id": request.id, "user_id": request.user_id},
    )
