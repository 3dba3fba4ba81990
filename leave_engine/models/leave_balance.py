from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_engine.database import Base


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "leave_type_id", "year", name="uq_leave_balance_user_type_year"),
        CheckConstraint("used_days >= 0", name="ck_leave_balance_used"),
        CheckConstraint("pending_days >= 0", name="ck_leave_balance_pending"),
        CheckConstraint(
            "total_days + carry_forward_days - used_days - pending_days >= 0",
            name="ck_leave_balance_available",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    total_days = Column(Integer, nullable=False, default=0)
    used_days = Column(Integer, nullable=False, default=0)
    pending_days = Column(Integer, nullable=False, default=0)
    carry_forward_days = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    leave_type = relationship("LeaveType")

    @property
    def available_days(self) -> int:
        return self.total_days + self.carry_forward_days - self.used_days - self.pending_days

    def __repr__(self):
        return (
            f"<LeaveBalance user={self.user_id} type={self.leave_type_id} year={self.year} "
            f"total={self.total_days} cf={self.carry_forward_days} "
            f"used={self.used_days} pending={self.pending_days}>"
        )


class ManualLeaveAdjustment(Base):
    __tablename__ = "manual_leave_adjustments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    adjusted_by = Column(Integer, nullable=False)
    before_value = Column(Integer, nullable=False)
    after_value = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
