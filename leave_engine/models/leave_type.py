"""
Leave type and leave policy models.

A leave type is either global (tenant_id IS NULL) or scoped to one tenant.
A tenant row with the same name as a global row shadows it for that tenant.
"""
import enum

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, JSON,
    String, Text, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from leave_engine.database import Base


class GenderRestriction(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class RuleKind(str, enum.Enum):
    """Closed set of policy rule kinds the validator evaluates."""
    MIN_DAYS_PER_REQUEST = "min_days_per_request"
    MAX_REQUESTS_PER_YEAR = "max_requests_per_year"
    BLACKOUT_PERIOD = "blackout_period"
    DOCUMENTATION_REQUIRED_OVER_DAYS = "documentation_required_over_days"
    CUSTOM = "custom"  # stored, never evaluated


class LeaveType(Base):
    __tablename__ = "leave_types"
    __table_args__ = (
        UniqueConstraint("name", "tenant_id", name="uq_leave_type_name_tenant"),
        # NULL tenant_id escapes the composite constraint; guard the global name space separately
        Index(
            "uq_leave_type_global_name",
            "name",
            unique=True,
            postgresql_where=text("tenant_id IS NULL"),
            sqlite_where=text("tenant_id IS NULL"),
        ),
        CheckConstraint("max_days >= 0", name="ck_leave_type_max_days"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=True, index=True)  # NULL = global default
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    requires_documentation = Column(Boolean, default=False, nullable=False)
    max_days = Column(Integer, nullable=False, default=0)
    is_paid = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    policy = relationship("LeavePolicy", back_populates="leave_type", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        scope = "global" if self.tenant_id is None else f"tenant={self.tenant_id}"
        return f"<LeaveType {self.name} ({scope})>"

    @property
    def is_global(self) -> bool:
        return self.tenant_id is None


class LeavePolicy(Base):
    __tablename__ = "leave_policies"
    __table_args__ = (
        CheckConstraint("default_days >= 0", name="ck_leave_policy_default_days"),
    )

    id = Column(Integer, primary_key=True, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id", ondelete="CASCADE"), unique=True, nullable=False)
    default_days = Column(Integer, nullable=False, default=0)
    carry_forward_days = Column(Integer, nullable=False, default=0)
    min_service_days = Column(Integer, nullable=False, default=0)
    requires_approval = Column(Boolean, default=True, nullable=False)
    notice_period_days = Column(Integer, nullable=False, default=0)
    max_consecutive_days = Column(Integer, nullable=True)  # NULL means no cap
    gender_specific = Column(String(10), nullable=True)  # GenderRestriction value or NULL
    exclude_non_working_days = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    leave_type = relationship("LeaveType", back_populates="policy")
    rules = relationship(
        "LeavePolicyRule",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="LeavePolicyRule.id",
    )


class LeavePolicyRule(Base):
    __tablename__ = "leave_policy_rules"

    id = Column(Integer, primary_key=True, index=True)
    policy_id = Column(Integer, ForeignKey("leave_policies.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_type = Column(String(50), nullable=False)  # RuleKind value
    rule_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    policy = relationship("LeavePolicy", back_populates="rules")
