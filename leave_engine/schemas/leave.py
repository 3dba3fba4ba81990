from datetime import date, datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_engine.models.leave_request import ApprovalAction
from leave_engine.models.leave_type import GenderRestriction
from leave_engine.schemas.principal import UserRole


# --- Policy rules (tagged by rule_type) ---

class MinDaysPerRequestRule(BaseModel):
    rule_type: Literal["min_days_per_request"] = "min_days_per_request"
    value: int = Field(ge=1)


class MaxRequestsPerYearRule(BaseModel):
    rule_type: Literal["max_requests_per_year"] = "max_requests_per_year"
    value: int = Field(ge=0)


class BlackoutPeriodRule(BaseModel):
    rule_type: Literal["blackout_period"] = "blackout_period"
    start: date
    end: date
    label: Optional[str] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.end < self.start:
            raise ValueError("blackout_period end must not precede start")
        return self


class DocumentationRequiredOverDaysRule(BaseModel):
    rule_type: Literal["documentation_required_over_days"] = "documentation_required_over_days"
    value: int = Field(ge=0)


class CustomRule(BaseModel):
    rule_type: Literal["custom"] = "custom"
    name: str
    value: Any = None


PolicyRuleSpec = Annotated[
    Union[
        MinDaysPerRequestRule,
        MaxRequestsPerYearRule,
        BlackoutPeriodRule,
        DocumentationRequiredOverDaysRule,
        CustomRule,
    ],
    Field(discriminator="rule_type"),
]


# --- Leave types & policies ---

class LeavePolicyFields(BaseModel):
    default_days: Optional[int] = Field(default=None, ge=0)
    carry_forward_days: Optional[int] = Field(default=None, ge=0)
    min_service_days: Optional[int] = Field(default=None, ge=0)
    requires_approval: Optional[bool] = None
    notice_period_days: Optional[int] = Field(default=None, ge=0)
    max_consecutive_days: Optional[int] = Field(default=None, ge=0)
    gender_specific: Optional[GenderRestriction] = None
    exclude_non_working_days: Optional[bool] = None
    is_active: Optional[bool] = None
    rules: Optional[List[PolicyRuleSpec]] = None


class LeaveTypeFields(BaseModel):
    description: Optional[str] = None
    requires_documentation: Optional[bool] = None
    # Negative values are rejected by the resolver as InvalidMaxDays
    max_days: Optional[int] = None
    is_paid: Optional[bool] = None
    is_active: Optional[bool] = None


class TenantOverride(BaseModel):
    """Fields a tenant changes on its copy of a leave type; unset fields keep their current value."""
    leave_type: LeaveTypeFields = Field(default_factory=LeaveTypeFields)
    policy: LeavePolicyFields = Field(default_factory=LeavePolicyFields)


class LeaveTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    requires_documentation: bool = False
    max_days: int
    is_paid: bool = True
    is_active: bool = True
    policy: LeavePolicyFields = Field(default_factory=LeavePolicyFields)


class PolicyRuleResponse(BaseModel):
    id: int
    rule_type: str
    rule_value: Any = None

    model_config = ConfigDict(from_attributes=True)


class LeavePolicyResponse(BaseModel):
    id: int
    leave_type_id: int
    default_days: int
    carry_forward_days: int
    min_service_days: int
    requires_approval: bool
    notice_period_days: int
    max_consecutive_days: Optional[int] = None
    gender_specific: Optional[str] = None
    exclude_non_working_days: bool
    is_active: bool
    rules: List[PolicyRuleResponse] = []

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeResponse(BaseModel):
    id: int
    tenant_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    requires_documentation: bool
    max_days: int
    is_paid: bool
    is_active: bool
    is_global: bool
    policy: Optional[LeavePolicyResponse] = None

    model_config = ConfigDict(from_attributes=True)


class EffectivePolicyEntry(BaseModel):
    leave_type: LeaveTypeResponse
    is_global: bool
    has_tenant_override: bool


# --- Balances ---

class LeaveBalanceResponse(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    year: int
    total_days: int
    used_days: int
    pending_days: int
    carry_forward_days: int
    available_days: int

    model_config = ConfigDict(from_attributes=True)


class BalanceAdjustment(BaseModel):
    user_id: int
    leave_type_id: int
    year: int
    total_days: int = Field(ge=0)
    reason: str = Field(min_length=1)


class RolloverResult(BaseModel):
    year: int
    processed: List[int] = []
    failed: List[int] = []


# --- Requests ---

class LeaveDocumentIn(BaseModel):
    document_ref: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_type: Optional[str] = None


class LeaveRequestCreate(BaseModel):
    leave_type_id: int
    start_date: date
    end_date: date
    reason: Optional[str] = None
    contact_number: Optional[str] = None
    documents: List[LeaveDocumentIn] = []


class LeaveDocumentResponse(BaseModel):
    id: int
    document_ref: str
    file_name: str
    file_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EscalationResponse(BaseModel):
    id: int
    request_id: int
    escalated_by: int
    escalated_to: int
    reason: str
    status: str
    resolution_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestResponse(BaseModel):
    id: int
    user_id: int
    tenant_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    days_requested: int
    reason: Optional[str] = None
    contact_number: Optional[str] = None
    status: str
    requires_documentation: bool
    has_documentation: bool
    rejection_reason: Optional[str] = None
    workflow_id: Optional[int] = None
    current_level_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    documents: List[LeaveDocumentResponse] = []
    escalations: List[EscalationResponse] = []

    model_config = ConfigDict(from_attributes=True)


class DecisionRequest(BaseModel):
    action: ApprovalAction
    comments: Optional[str] = None
    rejection_reason: Optional[str] = None
    resolution_notes: Optional[str] = None
    escalation_reason: Optional[str] = None
    escalated_to: Optional[int] = None


class ApprovalRecordResponse(BaseModel):
    id: int
    request_id: int
    level_id: Optional[int] = None
    approver_id: int
    action: str
    comments: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# --- Workflows ---

class ApprovalLevelIn(BaseModel):
    level_name: str = Field(min_length=1)
    role: UserRole


class WorkflowCreate(BaseModel):
    leave_type_id: int
    min_days: int = Field(default=1, ge=0)
    max_days: Optional[int] = Field(default=None, ge=0)
    requires_all_levels: bool = False
    levels: List[ApprovalLevelIn] = Field(min_length=1)

    @model_validator(mode="after")
    def check_range(self):
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days must not be less than min_days")
        return self


class ApprovalLevelResponse(BaseModel):
    id: int
    level_order: int
    level_name: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class WorkflowResponse(BaseModel):
    id: int
    tenant_id: int
    leave_type_id: int
    min_days: int
    max_days: Optional[int] = None
    requires_all_levels: bool
    is_active: bool
    levels: List[ApprovalLevelResponse] = []

    model_config = ConfigDict(from_attributes=True)


# --- Holidays & reporting ---

class HolidayCreate(BaseModel):
    name: str = Field(min_length=1)
    date: date
    description: Optional[str] = None


class HolidayResponse(BaseModel):
    id: int
    tenant_id: int
    name: str
    date: date
    description: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveStatistics(BaseModel):
    year: int
    total_requests: int
    by_status: dict
    by_leave_type: dict


class TenantOverrideRequest(TenantOverride):
    leave_type_name: str = Field(min_length=1)


# --- Outbox ---

class LeaveEventResponse(BaseModel):
    id: int
    event_type: str
    request_id: int
    user_id: int
    tenant_id: int
    leave_type_name: str
    start_date: date
    end_date: date
    days_requested: int
    actor_id: int
    created_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MarkDispatched(BaseModel):
    event_ids: List[int] = Field(min_length=1)
