"""
Leave Request Service

Submission runs an ordered validation pipeline; the first failing step raises
and nothing is written. The ledger reservation is the last step that can fail
before the request row is persisted, and both happen in one unit of work.
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from leave_engine.core.exceptions import (
    ApproverNotAuthorized,
    InvalidDateRange,
    InvalidLeaveType,
    InvalidStateTransition,
    LeaveRequestNotFound,
    MaxConsecutiveExceeded,
    NoWorkflowConfigured,
    NoticePeriodViolation,
    NotEligible,
    OverlappingRequest,
    PolicyNotFound,
)
from leave_engine.database import lock_key, unit_of_work
from leave_engine.models.leave_event import LeaveEventType
from leave_engine.models.leave_request import ACTIVE_STATUSES, LeaveDocument, LeaveRequest, LeaveStatus
from leave_engine.models.leave_type import LeaveType
from leave_engine.schemas.leave import LeaveRequestCreate
from leave_engine.schemas.principal import Principal
from leave_engine.services import state_machine
from leave_engine.services.balance_ledger import BalanceLedger
from leave_engine.services.base import BaseService
from leave_engine.services.events import LeaveEventPublisher
from leave_engine.services.holiday_service import HolidayService
from leave_engine.services.policy_resolver import PolicyResolver
from leave_engine.services.policy_rules import RuleContext, evaluate_rules
from leave_engine.services.workflow_service import WorkflowService

SUBMISSION_LOCK = "leave-request-submission"


class LeaveRequestService(BaseService):

    def __init__(self, db, principal: Principal):
        super().__init__(db, principal.tenant_id)
        self.principal = principal
        self.ledger = BalanceLedger(db, principal.tenant_id)

    # --- Submission ---

    def submit(self, payload: LeaveRequestCreate, today: Optional[date] = None) -> LeaveRequest:
        today = today or date.today()
        user = self.principal

        with unit_of_work(self.db):
            leave_type = self._resolve_type(payload.leave_type_id)
            policy = leave_type.policy

            self._check_eligibility(policy, today)

            if payload.start_date > payload.end_date:
                raise InvalidDateRange("End date cannot be before start date")
            if payload.start_date < today:
                raise InvalidDateRange("Cannot apply for leave in the past")

            notice = (payload.start_date - today).days
            if notice < policy.notice_period_days:
                raise NoticePeriodViolation(
                    required_days=policy.notice_period_days,
                    earliest_valid_date=today + timedelta(days=policy.notice_period_days),
                )

            days = HolidayService(self.db, self.tenant_id).count_leave_days(
                payload.start_date, payload.end_date, policy.exclude_non_working_days
            )
            if days <= 0:
                raise InvalidDateRange("The selected dates contain no working days")

            if policy.max_consecutive_days is not None and days > policy.max_consecutive_days:
                raise MaxConsecutiveExceeded(max_allowed=policy.max_consecutive_days, requested=days)

            # Rules, overlap and reservation see every earlier submission of this user
            lock_key(self.db, SUBMISSION_LOCK, user.user_id)

            evaluate_rules(policy, RuleContext(
                db=self.db,
                user_id=user.user_id,
                leave_type_id=leave_type.id,
                start_date=payload.start_date,
                end_date=payload.end_date,
                days_requested=days,
                document_count=len(payload.documents),
            ))

            conflict = self._find_overlap(payload.start_date, payload.end_date)
            if conflict is not None:
                raise OverlappingRequest(conflicting_request_id=conflict.id)

            workflow = WorkflowService(self.db, self.tenant_id).resolve_workflow(leave_type.id, days)
            if workflow is None:
                raise NoWorkflowConfigured(leave_type_id=leave_type.id, days_requested=days)

            year = payload.start_date.year
            self.ledger.reserve(user.user_id, leave_type.id, year, days)

            request = LeaveRequest(
                user_id=user.user_id,
                tenant_id=self.tenant_id,
                leave_type_id=leave_type.id,
                start_date=payload.start_date,
                end_date=payload.end_date,
                days_requested=days,
                balance_year=year,
                reason=payload.reason,
                contact_number=payload.contact_number,
                status=LeaveStatus.PENDING.value,
                requires_documentation=leave_type.requires_documentation,
                has_documentation=bool(payload.documents),
                workflow_id=workflow.id,
                current_level_id=workflow.first_level.id,
            )
            request.documents = [
                LeaveDocument(document_ref=doc.document_ref, file_name=doc.file_name, file_type=doc.file_type)
                for doc in payload.documents
            ]
            self.db.add(request)
            self.db.flush()
            LeaveEventPublisher.publish(self.db, request, LeaveEventType.REQUEST_SUBMITTED, user.user_id)

        self._logger.info(
            "Leave request submitted",
            extra={"leave_request_id": request.id, "user_id": user.user_id,
                   "leave_type_id": request.leave_type_id, "days": request.days_requested},
        )
        self.db.refresh(request)
        return request

    def _resolve_type(self, leave_type_id: int) -> LeaveType:
        try:
            leave_type = PolicyResolver(self.db, self.tenant_id).resolve_leave_type(leave_type_id)
        except PolicyNotFound:
            raise InvalidLeaveType()
        policy = leave_type.policy
        if not leave_type.is_active or policy is None or not policy.is_active:
            raise InvalidLeaveType()
        return leave_type

    def _check_eligibility(self, policy, today: date) -> None:
        user = self.principal
        if policy.gender_specific and (user.gender or "").lower() != policy.gender_specific:
            raise NotEligible(
                f"This leave type is only available for {policy.gender_specific} employees",
                details={"gender_specific": policy.gender_specific},
            )
        if user.hired_on is not None and policy.min_service_days:
            served = (today - user.hired_on).days
            if served < policy.min_service_days:
                raise NotEligible(
                    f"This leave type requires {policy.min_service_days} days of service",
                    details={"min_service_days": policy.min_service_days, "service_days": served},
                )

    def _find_overlap(self, start_date: date, end_date: date) -> Optional[LeaveRequest]:
        return (
            self.db.query(LeaveRequest)
            .filter(
                LeaveRequest.user_id == self.principal.user_id,
                LeaveRequest.tenant_id == self.tenant_id,
                LeaveRequest.status.in_(ACTIVE_STATUSES),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
            .with_for_update()
            .first()
        )

    # --- Cancellation ---

    def cancel(self, request_id: int) -> LeaveRequest:
        with unit_of_work(self.db):
            request = self._locked_request(request_id)
            if request.user_id != self.principal.user_id:
                raise ApproverNotAuthorized("Only the requester can cancel a leave request")
            state_machine.ensure_transition(request, LeaveStatus.CANCELLED)
            if request.approvals:
                # Partially approved multi-level requests stay pending but are no longer cancellable
                raise InvalidStateTransition(current=request.status, target=LeaveStatus.CANCELLED.value)

            self.ledger.release(request.user_id, request.leave_type_id, request.balance_year, request.days_requested)
            state_machine.transition(request, LeaveStatus.CANCELLED)
            LeaveEventPublisher.publish(self.db, request, LeaveEventType.REQUEST_CANCELLED, self.principal.user_id)
        self.db.refresh(request)
        return request

    # --- Reads ---

    def _locked_request(self, request_id: int) -> LeaveRequest:
        request = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == request_id, LeaveRequest.tenant_id == self.tenant_id)
            .with_for_update()
            .first()
        )
        if request is None:
            raise LeaveRequestNotFound(request_id)
        return request

    def get_request(self, request_id: int) -> LeaveRequest:
        request = (
            self.db.query(LeaveRequest)
            .filter(LeaveRequest.id == request_id, LeaveRequest.tenant_id == self.tenant_id)
            .first()
        )
        if request is None:
            raise LeaveRequestNotFound(request_id)
        return request

    def list_requests(self, status: Optional[str] = None) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.user_id == self.principal.user_id,
            LeaveRequest.tenant_id == self.tenant_id,
        )
        if status:
            query = query.filter(LeaveRequest.status == status)
        return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()

    def leave_statistics(self, year: int) -> Dict[str, Any]:
        by_status = dict(
            self.db.query(LeaveRequest.status, func.count(LeaveRequest.id))
            .filter(LeaveRequest.tenant_id == self.tenant_id, LeaveRequest.balance_year == year)
            .group_by(LeaveRequest.status)
            .all()
        )
        by_leave_type = dict(
            self.db.query(LeaveType.name, func.count(LeaveRequest.id))
            .join(LeaveType, LeaveType.id == LeaveRequest.leave_type_id)
            .filter(LeaveRequest.tenant_id == self.tenant_id, LeaveRequest.balance_year == year)
            .group_by(LeaveType.name)
            .all()
        )
        return {
            "year": year,
            "total_requests": sum(by_status.values()),
            "by_status": by_status,
            "by_leave_type": by_leave_type,
        }
