"""
Tenant administration of leave configuration: types, policies, workflows,
holidays, balance adjustments, year-end rollover and the event outbox.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leave_engine.database import get_db
from leave_engine.routers.deps import ADMIN_ROLES, MANAGEMENT_ROLES, require_role
from leave_engine.schemas.leave import (
    BalanceAdjustment,
    EffectivePolicyEntry,
    HolidayCreate,
    HolidayResponse,
    LeaveBalanceResponse,
    LeaveEventResponse,
    LeavePolicyFields,
    LeaveStatistics,
    LeaveTypeCreate,
    LeaveTypeFields,
    LeaveTypeResponse,
    MarkDispatched,
    RolloverResult,
    TenantOverrideRequest,
    WorkflowCreate,
    WorkflowResponse,
)
from leave_engine.schemas.principal import Principal, UserRole
from leave_engine.services.balance_ledger import BalanceLedger
from leave_engine.services.defaults import seed_default_workflows
from leave_engine.services.events import LeaveEventPublisher
from leave_engine.services.holiday_service import HolidayService
from leave_engine.services.leave_request_service import LeaveRequestService
from leave_engine.services.policy_resolver import PolicyResolver
from leave_engine.services.workflow_service import WorkflowService

router = APIRouter(prefix="/leave-admin")

admin_only = require_role(ADMIN_ROLES)
management_only = require_role(MANAGEMENT_ROLES)
super_admin_only = require_role([UserRole.SUPER_ADMIN])


# --- Leave types & policies ---

@router.get("/policies", response_model=List[EffectivePolicyEntry])
def list_policies(
    show_all: bool = Query(default=False),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    entries = PolicyResolver(db, principal.tenant_id).list_effective_policies(show_all=show_all)
    return [
        EffectivePolicyEntry(
            leave_type=LeaveTypeResponse.model_validate(entry["leave_type"]),
            is_global=entry["is_global"],
            has_tenant_override=entry["has_tenant_override"],
        )
        for entry in entries
    ]


@router.post("/types", response_model=LeaveTypeResponse, status_code=status.HTTP_201_CREATED)
def create_leave_type(payload: LeaveTypeCreate, principal: Principal = Depends(admin_only), db: Session = Depends(get_db)):
    return PolicyResolver(db, principal.tenant_id).create_leave_type(payload)


@router.put("/overrides", response_model=LeaveTypeResponse)
def upsert_override(
    payload: TenantOverrideRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Create or update the company's copy of a leave type, leaving the global default untouched."""
    return PolicyResolver(db, principal.tenant_id).upsert_tenant_override(payload.leave_type_name, payload)


@router.patch("/types/{leave_type_id}", response_model=LeaveTypeResponse)
def update_leave_type(
    leave_type_id: int,
    payload: LeaveTypeFields,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return PolicyResolver(db, principal.tenant_id).update_leave_type(leave_type_id, payload)


@router.patch("/types/{leave_type_id}/policy", response_model=LeaveTypeResponse)
def update_leave_policy(
    leave_type_id: int,
    payload: LeavePolicyFields,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return PolicyResolver(db, principal.tenant_id).update_leave_policy(leave_type_id, payload)


# --- Workflows ---

@router.get("/workflows", response_model=List[WorkflowResponse])
def list_workflows(
    leave_type_id: Optional[int] = Query(default=None),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return WorkflowService(db, principal.tenant_id).list_workflows(leave_type_id)


@router.post("/workflows", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(payload: WorkflowCreate, principal: Principal = Depends(management_only), db: Session = Depends(get_db)):
    return WorkflowService(db, principal.tenant_id).create_workflow(payload)


@router.post("/workflows/defaults")
def create_default_workflows(principal: Principal = Depends(management_only), db: Session = Depends(get_db)):
    created = seed_default_workflows(db, principal.tenant_id)
    return {"created": created}


@router.delete("/workflows/{workflow_id}", response_model=WorkflowResponse)
def deactivate_workflow(workflow_id: int, principal: Principal = Depends(management_only), db: Session = Depends(get_db)):
    return WorkflowService(db, principal.tenant_id).deactivate_workflow(workflow_id)


# --- Holidays ---

@router.post("/holidays", response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
def add_holiday(payload: HolidayCreate, principal: Principal = Depends(admin_only), db: Session = Depends(get_db)):
    return HolidayService(db, principal.tenant_id).add_holiday(payload)


# --- Balances ---

@router.get("/balances/{employee_id}", response_model=List[LeaveBalanceResponse])
def user_balances(
    employee_id: int,
    year: Optional[int] = Query(default=None),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return BalanceLedger(db, principal.tenant_id).balance_summary(employee_id, year or date.today().year)


@router.post("/balances/adjust", response_model=LeaveBalanceResponse)
def adjust_balance(payload: BalanceAdjustment, principal: Principal = Depends(management_only), db: Session = Depends(get_db)):
    leave_type = PolicyResolver(db, principal.tenant_id).resolve_leave_type(payload.leave_type_id)
    return BalanceLedger(db, principal.tenant_id).adjust_balance(
        user_id=payload.user_id,
        leave_type_id=leave_type.id,
        year=payload.year,
        total_days=payload.total_days,
        adjusted_by=principal.user_id,
        reason=payload.reason,
    )


@router.post("/rollover/{year}", response_model=RolloverResult)
def rollover(year: int, principal: Principal = Depends(super_admin_only), db: Session = Depends(get_db)):
    return BalanceLedger(db).rollover_all(year)


@router.get("/statistics", response_model=LeaveStatistics)
def statistics(
    year: Optional[int] = Query(default=None),
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return LeaveRequestService(db, principal).leave_statistics(year or date.today().year)


# --- Outbox ---

@router.get("/events", response_model=List[LeaveEventResponse])
def pending_events(
    limit: int = Query(default=100, ge=1, le=1000),
    principal: Principal = Depends(super_admin_only),
    db: Session = Depends(get_db),
):
    return LeaveEventPublisher.pending_events(db, limit)


@router.post("/events/dispatched")
def mark_dispatched(payload: MarkDispatched, principal: Principal = Depends(super_admin_only), db: Session = Depends(get_db)):
    return {"dispatched": LeaveEventPublisher.mark_dispatched(db, payload.event_ids)}
