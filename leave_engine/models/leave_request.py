import enum

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_engine.database import Base


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ESCALATED = "escalated"


class EscalationStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"


# Statuses that hold a reservation and block overlapping requests
ACTIVE_STATUSES = (LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value, LeaveStatus.ESCALATED.value)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        Index("ix_leave_requests_user_dates", "user_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_requested = Column(Integer, nullable=False)
    balance_year = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    contact_number = Column(String(50), nullable=True)
    # Using String to store enum value for simplicity with SQLite
    status = Column(String(20), nullable=False, default=LeaveStatus.PENDING.value, index=True)
    requires_documentation = Column(Boolean, default=False, nullable=False)
    has_documentation = Column(Boolean, default=False, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    workflow_id = Column(Integer, ForeignKey("approval_workflows.id"), nullable=True, index=True)
    current_level_id = Column(Integer, ForeignKey("approval_levels.id"), nullable=True, index=True)
    final_approver_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    leave_type = relationship("LeaveType")
    workflow = relationship("ApprovalWorkflow")
    current_level = relationship("ApprovalLevel")
    documents = relationship(
        "LeaveDocument", back_populates="request", cascade="all, delete-orphan", order_by="LeaveDocument.id"
    )
    escalations = relationship(
        "LeaveEscalation", back_populates="request", cascade="all, delete-orphan", order_by="LeaveEscalation.id"
    )
    approvals = relationship(
        "RequestApproval", back_populates="request", cascade="all, delete-orphan", order_by="RequestApproval.id"
    )

    def __repr__(self):
        return f"<LeaveRequest {self.id} user={self.user_id} {self.start_date}..{self.end_date} ({self.status})>"

    @property
    def active_escalation(self):
        for escalation in self.escalations:
            if escalation.status == EscalationStatus.PENDING.value:
                return escalation
        return None


class LeaveDocument(Base):
    """Metadata association for a file held by the external document store."""
    __tablename__ = "leave_documents"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    document_ref = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    request = relationship("LeaveRequest", back_populates="documents")


class LeaveEscalation(Base):
    __tablename__ = "leave_escalations"
    __table_args__ = (
        # At most one unresolved escalation per request
        Index(
            "uq_leave_escalation_open_request",
            "request_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    escalated_by = Column(Integer, nullable=False)
    escalated_to = Column(Integer, nullable=False, index=True)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=EscalationStatus.PENDING.value)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    request = relationship("LeaveRequest", back_populates="escalations")


class RequestApproval(Base):
    """One recorded decision on a request at a given approval level."""
    __tablename__ = "request_approvals"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    level_id = Column(Integer, ForeignKey("approval_levels.id"), nullable=True)
    approver_id = Column(Integer, nullable=False, index=True)
    action = Column(String(20), nullable=False)  # ApprovalAction value
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    request = relationship("LeaveRequest", back_populates="approvals")
    level = relationship("ApprovalLevel")
