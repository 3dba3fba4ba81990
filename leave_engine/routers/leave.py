from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leave_engine.database import get_db
from leave_engine.routers.deps import get_principal
from leave_engine.schemas.leave import (
    ApprovalRecordResponse,
    DecisionRequest,
    HolidayResponse,
    LeaveBalanceResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveTypeResponse,
)
from leave_engine.schemas.principal import Principal
from leave_engine.services.approval_service import ApprovalService
from leave_engine.services.balance_ledger import BalanceLedger
from leave_engine.services.holiday_service import HolidayService
from leave_engine.services.leave_request_service import LeaveRequestService
from leave_engine.services.policy_resolver import PolicyResolver

router = APIRouter(prefix="/leave")


@router.get("/types", response_model=List[LeaveTypeResponse])
def list_leave_types(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    """Effective, active leave types for the caller's company."""
    return PolicyResolver(db, principal.tenant_id).resolve_leave_types(active_only=True)


@router.get("/balances", response_model=List[LeaveBalanceResponse])
def my_balances(
    year: Optional[int] = Query(default=None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    ledger = BalanceLedger(db, principal.tenant_id)
    return ledger.balance_summary(principal.user_id, year or date.today().year)


@router.get("/holidays", response_model=List[HolidayResponse])
def list_holidays(
    year: Optional[int] = Query(default=None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return HolidayService(db, principal.tenant_id).list_holidays(year)


@router.post("/requests", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_leave_request(
    payload: LeaveRequestCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return LeaveRequestService(db, principal).submit(payload)


@router.get("/requests", response_model=List[LeaveRequestResponse])
def my_requests(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return LeaveRequestService(db, principal).list_requests(status_filter)


@router.get("/requests/{request_id}", response_model=LeaveRequestResponse)
def get_request(request_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return LeaveRequestService(db, principal).get_request(request_id)


@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestResponse)
def cancel_request(request_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return LeaveRequestService(db, principal).cancel(request_id)


# --- Approvals ---

@router.get("/approvals/queue", response_model=List[LeaveRequestResponse])
def approval_queue(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    """Escalations addressed to the caller, then their own requests, then requests awaiting their role."""
    return ApprovalService(db, principal).approval_queue()


@router.post("/requests/{request_id}/decision", response_model=LeaveRequestResponse)
def decide_request(
    request_id: int,
    decision: DecisionRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return ApprovalService(db, principal).decide(request_id, decision)


@router.get("/requests/{request_id}/history", response_model=List[ApprovalRecordResponse])
def approval_history(request_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return ApprovalService(db, principal).approval_history(request_id)
