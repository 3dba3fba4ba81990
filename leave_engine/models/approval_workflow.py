"""
Approval routing configuration.
A workflow covers one leave type for one tenant over a day-count range and
owns its ordered approval levels.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_engine.database import Base


class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"
    __table_args__ = (
        UniqueConstraint("tenant_id", "leave_type_id", "min_days", name="uq_workflow_tenant_type_min"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    min_days = Column(Integer, nullable=False, default=1)
    max_days = Column(Integer, nullable=True)  # NULL = unbounded
    requires_all_levels = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    leave_type = relationship("LeaveType")
    levels = relationship(
        "ApprovalLevel",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="ApprovalLevel.level_order",
    )

    def covers(self, days: int) -> bool:
        return self.min_days <= days and (self.max_days is None or days <= self.max_days)

    @property
    def first_level(self):
        return self.levels[0] if self.levels else None

    def next_level(self, level):
        for candidate in self.levels:
            if candidate.level_order > level.level_order:
                return candidate
        return None


class ApprovalLevel(Base):
    __tablename__ = "approval_levels"
    __table_args__ = (
        UniqueConstraint("workflow_id", "level_order", name="uq_approval_level_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    workflow_id = Column(Integer, ForeignKey("approval_workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    level_order = Column(Integer, nullable=False)
    level_name = Column(String(50), nullable=False)
    role = Column(String(50), nullable=False)

    workflow = relationship("ApprovalWorkflow", back_populates="levels")

    def __repr__(self):
        return f"<ApprovalLevel {self.level_order}:{self.role}>"
