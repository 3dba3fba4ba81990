"""
Default leave catalogue and its idempotent seeding.

Seeding is a deployment-time step (scripts/seed_leave_defaults.py). Running it
again only inserts rows that are missing; existing global rows are left as is.
"""
import logging

from sqlalchemy.orm import Session

from leave_engine.core.config import settings
from leave_engine.database import unit_of_work
from leave_engine.models.approval_workflow import ApprovalLevel, ApprovalWorkflow
from leave_engine.models.leave_type import GenderRestriction, LeavePolicy, LeaveType
from leave_engine.schemas.principal import UserRole
from leave_engine.services.policy_resolver import PolicyResolver

logger = logging.getLogger(__name__)

# name, description, requires_documentation, max_days, is_paid,
# default_days, carry_forward_days, min_service_days, notice_period_days, max_consecutive_days, gender
DEFAULT_LEAVE_CATALOGUE = [
    ("Privilege/Earned Leave (PL/EL)", "Accrues monthly for planned vacations or personal time off",
     False, 18, True, 18, 30, 180, 7, 15, None),
    ("Casual Leave (CL)", "For urgent or unforeseen personal matters",
     False, 12, True, 12, 0, 90, 1, 3, None),
    ("Sick Leave (SL)", "For health-related absences",
     True, 12, True, 12, 0, 90, 0, 5, None),
    ("Maternity Leave (ML)", "For pre- and post-natal care",
     True, 90, True, 90, 0, 180, 30, 90, GenderRestriction.FEMALE),
    ("Child Care Leave", "For childcare responsibilities",
     False, 15, True, 15, 0, 180, 7, 15, None),
    ("Child Adoption Leave", "For adoptive parents",
     True, 90, True, 90, 0, 180, 30, 90, None),
    ("Compensatory Off", "Granted in lieu of extra hours worked",
     False, 0, True, 0, 0, 90, 1, 2, None),
    ("Marriage Leave", "For employee's own wedding",
     True, 5, True, 5, 0, 180, 15, 5, None),
    ("Paternity Leave", "For male employees following child birth",
     True, 10, True, 10, 0, 180, 15, 10, GenderRestriction.MALE),
    ("Bereavement Leave", "Upon death of immediate family member",
     True, 5, True, 5, 0, 90, 0, 5, None),
    ("Leave Without Pay (LWP)", "Unpaid leave beyond allocated quota",
     False, 0, False, 0, 0, 90, 7, 30, None),
    ("Sabbatical Leave", "Extended leave after long service",
     True, 180, False, 180, 0, 2555, 90, 180, None),
    ("Half Pay Leave (HPL)", "Leave with half salary",
     False, 20, True, 20, 0, 180, 7, 20, None),
    ("Commuted Leave", "Conversion of half pay leave to full pay",
     True, 10, True, 10, 0, 180, 7, 10, None),
    ("Leave Not Due (LND)", "Advance leave against future accruals",
     True, 10, True, 10, 0, 365, 7, 10, None),
    ("Special Casual Leave (SCL)", "For specific purposes like blood donation, sports events",
     True, 10, True, 10, 0, 90, 7, 10, None),
]

# Leave types whose default workflow needs every level to sign off
ALL_LEVELS_REQUIRED = {"Maternity Leave (ML)", "Paternity Leave", "Sabbatical Leave"}

DEFAULT_APPROVAL_LEVELS = [
    ("Group Admin", UserRole.GROUP_ADMIN.value),
    ("Management", UserRole.MANAGEMENT.value),
]


def seed_global_defaults(db: Session) -> int:
    """Insert missing global leave types and policies. Returns the number of types created."""
    existing = {
        name for (name,) in db.query(LeaveType.name).filter(LeaveType.tenant_id.is_(None)).all()
    }
    created = 0
    with unit_of_work(db):
        for (name, description, requires_documentation, max_days, is_paid,
             default_days, carry_forward, min_service, notice, max_consecutive, gender) in DEFAULT_LEAVE_CATALOGUE:
            if name in existing:
                continue
            leave_type = LeaveType(
                tenant_id=None,
                name=name,
                description=description,
                requires_documentation=requires_documentation,
                max_days=max_days,
                is_paid=is_paid,
                is_active=True,
            )
            leave_type.policy = LeavePolicy(
                default_days=default_days,
                carry_forward_days=carry_forward,
                min_service_days=min_service,
                requires_approval=True,
                notice_period_days=notice,
                max_consecutive_days=max_consecutive,
                gender_specific=gender.value if gender else None,
                exclude_non_working_days=settings.leave.exclude_weekends_by_default,
                is_active=True,
            )
            db.add(leave_type)
            created += 1

    logger.info(f"Seeded {created} global leave types", extra={"skipped": len(existing)})
    return created


def seed_default_workflows(db: Session, tenant_id: int) -> int:
    """
    Give every effective leave type of the tenant that has no workflow yet the
    default two-level chain (group admin, then management).
    """
    resolver = PolicyResolver(db, tenant_id)
    configured = {
        leave_type_id
        for (leave_type_id,) in db.query(ApprovalWorkflow.leave_type_id)
        .filter(ApprovalWorkflow.tenant_id == tenant_id)
        .all()
    }
    created = 0
    with unit_of_work(db):
        for leave_type in resolver.resolve_leave_types(active_only=True):
            if leave_type.id in configured:
                continue
            workflow = ApprovalWorkflow(
                tenant_id=tenant_id,
                leave_type_id=leave_type.id,
                min_days=1,
                # A zero cap means the type has no fixed ceiling
                max_days=leave_type.max_days or None,
                requires_all_levels=leave_type.name in ALL_LEVELS_REQUIRED,
                is_active=True,
            )
            workflow.levels = [
                ApprovalLevel(level_order=order, level_name=level_name, role=role)
                for order, (level_name, role) in enumerate(DEFAULT_APPROVAL_LEVELS, start=1)
            ]
            db.add(workflow)
            created += 1

    logger.info(f"Seeded {created} default approval workflows", extra={"tenant_id": tenant_id})
    return created
