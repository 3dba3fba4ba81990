from datetime import date
from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class LedgerInvariantError(RuntimeError):
    """
    Raised when a ledger mutation would break the balance invariant.
    This is a bug, never a user error: it must abort the unit of work.
    """
    pass


# --- Policy resolution ---

class PolicyNotFound(AppException):
    def __init__(self, message: str = "Leave type or policy not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=404, error_code="POLICY_NOT_FOUND", details=details)


class InvalidMaxDays(AppException):
    def __init__(self, max_days: int):
        super().__init__(
            message=f"max_days must be zero or greater (got {max_days})",
            status_code=400,
            error_code="INVALID_MAX_DAYS",
            details={"max_days": max_days}
        )


class DuplicateLeaveType(AppException):
    def __init__(self, name: str):
        super().__init__(
            message=f"A leave type named '{name}' already exists for this tenant",
            status_code=409,
            error_code="DUPLICATE_LEAVE_TYPE",
            details={"name": name}
        )


# --- Submission pipeline ---

class InvalidLeaveType(AppException):
    def __init__(self, message: str = "The requested leave type is not available for your company"):
        super().__init__(message=message, status_code=400, error_code="INVALID_LEAVE_TYPE")


class NotEligible(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, error_code="NOT_ELIGIBLE", details=details)


class InvalidDateRange(AppException):
    def __init__(self, message: str):
        super().__init__(message=message, status_code=400, error_code="INVALID_DATE_RANGE")


class NoticePeriodViolation(AppException):
    def __init__(self, required_days: int, earliest_valid_date: date):
        self.earliest_valid_date = earliest_valid_date
        super().__init__(
            message=f"This leave type requires {required_days} days notice",
            status_code=400,
            error_code="NOTICE_PERIOD_VIOLATION",
            details={
                "required_days": required_days,
                "earliest_valid_date": earliest_valid_date.isoformat(),
            }
        )


class MaxConsecutiveExceeded(AppException):
    def __init__(self, max_allowed: int, requested: int):
        self.max_allowed = max_allowed
        self.requested = requested
        super().__init__(
            message=f"Maximum consecutive days exceeded ({requested} > {max_allowed})",
            status_code=400,
            error_code="MAX_CONSECUTIVE_EXCEEDED",
            details={"max_allowed": max_allowed, "requested_days": requested}
        )


class PolicyRuleViolation(AppException):
    def __init__(self, rule_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.rule_type = rule_type
        super().__init__(
            message=message,
            status_code=400,
            error_code="POLICY_RULE_VIOLATION",
            details={"rule_type": rule_type, **(details or {})}
        )


class OverlappingRequest(AppException):
    def __init__(self, conflicting_request_id: int):
        super().__init__(
            message="You already have a leave request for these dates",
            status_code=409,
            error_code="OVERLAPPING_REQUEST",
            details={"conflicting_request_id": conflicting_request_id}
        )


class InsufficientBalance(AppException):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            message=f"Insufficient leave balance. Requested: {requested}, Available: {available}",
            status_code=400,
            error_code="INSUFFICIENT_BALANCE",
            details={"available_days": available, "requested_days": requested}
        )


class InvalidBalanceAdjustment(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, error_code="INVALID_BALANCE_ADJUSTMENT", details=details)


class NoWorkflowConfigured(AppException):
    def __init__(self, leave_type_id: int, days_requested: int):
        super().__init__(
            message="No approval workflow found for this request",
            status_code=400,
            error_code="NO_WORKFLOW_CONFIGURED",
            details={"leave_type_id": leave_type_id, "days_requested": days_requested}
        )


# --- Request lifecycle & approvals ---

class LeaveRequestNotFound(AppException):
    def __init__(self, request_id: int):
        super().__init__(
            message="Leave request not found",
            status_code=404,
            error_code="LEAVE_REQUEST_NOT_FOUND",
            details={"request_id": request_id}
        )


class WorkflowNotFound(AppException):
    def __init__(self, workflow_id: int):
        super().__init__(
            message="Approval workflow not found",
            status_code=404,
            error_code="WORKFLOW_NOT_FOUND",
            details={"workflow_id": workflow_id}
        )


class InvalidStateTransition(AppException):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            message=f"Cannot move a leave request from '{current}' to '{target}'",
            status_code=409,
            error_code="INVALID_STATE_TRANSITION",
            details={"current_status": current, "target_status": target}
        )


class ApproverNotAuthorized(AppException):
    """Named to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Unauthorized to process this request"):
        super().__init__(message=message, status_code=403, error_code="APPROVER_NOT_AUTHORIZED")


class MissingRejectionReason(AppException):
    def __init__(self):
        super().__init__(message="Rejection reason is required", status_code=400, error_code="MISSING_REJECTION_REASON")


class MissingEscalationReason(AppException):
    def __init__(self, message: str = "Escalation reason and target are required"):
        super().__init__(message=message, status_code=400, error_code="MISSING_ESCALATION_REASON")


class MissingResolutionNotes(AppException):
    def __init__(self):
        super().__init__(
            message="Resolution notes are required for escalated requests",
            status_code=400,
            error_code="MISSING_RESOLUTION_NOTES"
        )
