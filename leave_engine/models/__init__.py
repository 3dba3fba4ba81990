# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    leave_type, leave_balance, leave_request,
    approval_workflow, company_holiday, leave_event,
)

# Explicit class exports for cleaner imports
from .leave_type import LeaveType, LeavePolicy, LeavePolicyRule, RuleKind, GenderRestriction
from .leave_balance import LeaveBalance, ManualLeaveAdjustment
from .leave_request import (
    LeaveRequest, LeaveDocument, LeaveEscalation, RequestApproval,
    LeaveStatus, EscalationStatus, ApprovalAction,
)
from .approval_workflow import ApprovalWorkflow, ApprovalLevel
from .company_holiday import CompanyHoliday
from .leave_event import LeaveEvent, LeaveEventType

__all__ = [
    "LeaveType",
    "LeavePolicy",
    "LeavePolicyRule",
    "RuleKind",
    "GenderRestriction",
    "LeaveBalance",
    "ManualLeaveAdjustment",
    "LeaveRequest",
    "LeaveDocument",
    "LeaveEscalation",
    "RequestApproval",
    "LeaveStatus",
    "EscalationStatus",
    "ApprovalAction",
    "ApprovalWorkflow",
    "ApprovalLevel",
    "CompanyHoliday",
    "LeaveEvent",
    "LeaveEventType",
]
