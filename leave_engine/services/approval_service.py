"""
Approval / Escalation Router

Processes approve, reject and escalate decisions on a leave request. Every
decision is one unit of work: the request row is locked, its status changes,
the ledger reservation is committed or released, and the decision and its
outbox event are written together.
"""
from datetime import datetime, timezone
from typing import List

from leave_engine.core.exceptions import (
    ApproverNotAuthorized,
    InvalidStateTransition,
    LeaveRequestNotFound,
    MissingEscalationReason,
    MissingRejectionReason,
    MissingResolutionNotes,
)
from leave_engine.database import unit_of_work
from leave_engine.models.leave_event import LeaveEventType
from leave_engine.models.leave_request import (
    ApprovalAction,
    EscalationStatus,
    LeaveEscalation,
    LeaveRequest,
    LeaveStatus,
    RequestApproval,
)
from leave_engine.schemas.leave import DecisionRequest
from leave_engine.schemas.principal import Principal, UserRole
from leave_engine.services import state_machine
from leave_engine.services.balance_ledger import BalanceLedger
from leave_engine.services.base import BaseService
from leave_engine.services.events import LeaveEventPublisher

_OUTCOMES = {
    ApprovalAction.APPROVE: LeaveStatus.APPROVED,
    ApprovalAction.REJECT: LeaveStatus.REJECTED,
}


def _filled(value) -> bool:
    return bool(value and value.strip())


class ApprovalService(BaseService):

    def __init__(self, db, principal: Principal):
        super().__init__(db, principal.tenant_id)
        self.principal = principal
        self.ledger = BalanceLedger(db, principal.tenant_id)

    def _load(self, request_id: int, lock: bool = False) -> LeaveRequest:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.id == request_id, LeaveRequest.tenant_id == self.tenant_id
        )
        if lock:
            query = query.with_for_update()
        request = query.first()
        if request is None:
            raise LeaveRequestNotFound(request_id)
        return request

    def decide(self, request_id: int, decision: DecisionRequest) -> LeaveRequest:
        with unit_of_work(self.db):
            request = self._load(request_id, lock=True)
            if decision.action == ApprovalAction.ESCALATE:
                self._escalate(request, decision)
            elif request.status == LeaveStatus.ESCALATED.value:
                self._resolve_escalation(request, decision)
            else:
                self._decide_pending(request, decision)
        self.db.refresh(request)
        return request

    # --- Authorization ---

    def _check_level_role(self, request: LeaveRequest) -> None:
        if request.user_id == self.principal.user_id:
            raise ApproverNotAuthorized("You cannot decide on your own leave request")
        role = self.principal.role
        if role == UserRole.SUPER_ADMIN:
            return
        level = request.current_level
        if level is None:
            if role == UserRole.EMPLOYEE:
                raise ApproverNotAuthorized()
            return
        if level.role != role.value:
            raise ApproverNotAuthorized(
                f"This request is awaiting the '{level.level_name}' level ({level.role})"
            )

    # --- Pending requests ---

    def _decide_pending(self, request: LeaveRequest, decision: DecisionRequest) -> None:
        target = _OUTCOMES[decision.action]
        state_machine.ensure_transition(request, target)
        self._check_level_role(request)

        if decision.action == ApprovalAction.REJECT:
            if not _filled(decision.rejection_reason):
                raise MissingRejectionReason()
            self._record(request, ApprovalAction.REJECT, decision.comments or decision.rejection_reason)
            self._finalize(request, LeaveStatus.REJECTED, rejection_reason=decision.rejection_reason.strip())
            return

        self._record(request, ApprovalAction.APPROVE, decision.comments)
        workflow = request.workflow
        if workflow is not None and workflow.requires_all_levels and request.current_level is not None:
            next_level = workflow.next_level(request.current_level)
            if next_level is not None:
                request.current_level_id = next_level.id
                self._logger.info(
                    f"Leave request {request.id} advanced to level {next_level.level_order}",
                    extra={"leave_request_id": request.id, "approver_id": self.principal.user_id},
                )
                return
        self._finalize(request, LeaveStatus.APPROVED)

    # --- Escalation ---

    def _escalate(self, request: LeaveRequest, decision: DecisionRequest) -> None:
        state_machine.ensure_transition(request, LeaveStatus.ESCALATED)
        self._check_level_role(request)
        workflow = request.workflow
        level = request.current_level
        if workflow is not None and level is not None and level.id != workflow.first_level.id:
            raise ApproverNotAuthorized("Only a first-level approver can escalate a request")

        if not _filled(decision.escalation_reason) or decision.escalated_to is None:
            raise MissingEscalationReason()
        if decision.escalated_to == self.principal.user_id:
            raise MissingEscalationReason("A request cannot be escalated to yourself")

        escalation = LeaveEscalation(
            escalated_by=self.principal.user_id,
            escalated_to=decision.escalated_to,
            reason=decision.escalation_reason.strip(),
            status=EscalationStatus.PENDING.value,
        )
        request.escalations.append(escalation)
        self._record(request, ApprovalAction.ESCALATE, decision.comments or escalation.reason)
        state_machine.transition(request, LeaveStatus.ESCALATED)
        self.db.flush()
        LeaveEventPublisher.publish(self.db, request, LeaveEventType.REQUEST_ESCALATED, self.principal.user_id)

    def _resolve_escalation(self, request: LeaveRequest, decision: DecisionRequest) -> None:
        target = _OUTCOMES[decision.action]
        state_machine.ensure_transition(request, target)

        escalation = request.active_escalation
        if escalation is None:
            raise InvalidStateTransition(current=request.status, target=target.value)
        if escalation.escalated_to != self.principal.user_id:
            raise ApproverNotAuthorized("Only the escalation target can resolve this request")
        if not _filled(decision.resolution_notes):
            raise MissingResolutionNotes()
        if target == LeaveStatus.REJECTED and not _filled(decision.rejection_reason):
            raise MissingRejectionReason()

        escalation.status = EscalationStatus.RESOLVED.value
        escalation.resolution_notes = decision.resolution_notes.strip()
        escalation.resolved_at = datetime.now(timezone.utc)
        self._record(request, decision.action, decision.comments or escalation.resolution_notes)
        LeaveEventPublisher.publish(self.db, request, LeaveEventType.ESCALATION_RESOLVED, self.principal.user_id)

        if target == LeaveStatus.REJECTED:
            self._finalize(request, target, rejection_reason=decision.rejection_reason.strip())
        else:
            self._finalize(request, target)

    # --- Shared ---

    def _record(self, request: LeaveRequest, action: ApprovalAction, comments) -> None:
        request.approvals.append(RequestApproval(
            level_id=request.current_level_id,
            approver_id=self.principal.user_id,
            action=action.value,
            comments=comments,
        ))

    def _finalize(self, request: LeaveRequest, target: LeaveStatus, rejection_reason=None) -> None:
        args = (request.user_id, request.leave_type_id, request.balance_year, request.days_requested)
        if target == LeaveStatus.APPROVED:
            self.ledger.commit(*args)
            event_type = LeaveEventType.REQUEST_APPROVED
        else:
            self.ledger.release(*args)
            request.rejection_reason = rejection_reason
            event_type = LeaveEventType.REQUEST_REJECTED
        state_machine.transition(request, target)
        request.final_approver_id = self.principal.user_id
        self.db.flush()
        LeaveEventPublisher.publish(self.db, request, event_type, self.principal.user_id)

    # --- Reads ---

    def approval_history(self, request_id: int) -> List[RequestApproval]:
        return list(self._load(request_id).approvals)

    def _queue_band(self, request: LeaveRequest):
        me = self.principal
        if request.status == LeaveStatus.ESCALATED.value:
            escalation = request.active_escalation
            if escalation is not None and escalation.escalated_to == me.user_id:
                return 0
            return 1 if request.user_id == me.user_id else None
        if request.user_id == me.user_id:
            return 1
        level = request.current_level
        if me.role == UserRole.SUPER_ADMIN or (level is not None and level.role == me.role.value):
            return 2
        return None

    def approval_queue(self) -> List[LeaveRequest]:
        """
        Open requests relevant to the acting principal: escalations addressed to
        them first, then their own requests, then requests awaiting their role.
        Newest first within each group.
        """
        open_requests = (
            self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.tenant_id == self.tenant_id,
                LeaveRequest.status.in_([LeaveStatus.PENDING.value, LeaveStatus.ESCALATED.value]),
            )
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .all()
        )
        banded = []
        for request in open_requests:
            band = self._queue_band(request)
            if band is not None:
                banded.append((band, request))
        banded.sort(key=lambda item: item[0])
        return [request for _, request in banded]
