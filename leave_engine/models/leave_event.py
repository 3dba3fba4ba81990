import enum

from sqlalchemy import Column, Date, DateTime, Integer, String
from sqlalchemy.sql import func
from leave_engine.database import Base


class LeaveEventType(str, enum.Enum):
    REQUEST_SUBMITTED = "RequestSubmitted"
    REQUEST_APPROVED = "RequestApproved"
    REQUEST_REJECTED = "RequestRejected"
    REQUEST_CANCELLED = "RequestCancelled"
    REQUEST_ESCALATED = "RequestEscalated"
    ESCALATION_RESOLVED = "EscalationResolved"


class LeaveEvent(Base):
    """Outbox row written in the same transaction as the state change it reports."""
    __tablename__ = "leave_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    request_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    tenant_id = Column(Integer, nullable=False, index=True)
    leave_type_name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_requested = Column(Integer, nullable=False)
    actor_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    dispatched_at = Column(DateTime(timezone=True), nullable=True, index=True)
