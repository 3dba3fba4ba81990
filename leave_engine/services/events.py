"""
Domain event outbox.

Events are added to the session of the state change they describe and are
committed with it. The dispatcher collaborator drains them afterwards.
"""
from datetime import datetime, timezone
from typing import Iterable, List

from sqlalchemy.orm import Session

from leave_engine.models.leave_event import LeaveEvent, LeaveEventType
from leave_engine.models.leave_request import LeaveRequest


class LeaveEventPublisher:
    @staticmethod
    def publish(db: Session, request: LeaveRequest, event_type: LeaveEventType, actor_id: int) -> LeaveEvent:
        event = LeaveEvent(
            event_type=event_type.value,
            request_id=request.id,
            user_id=request.user_id,
            tenant_id=request.tenant_id,
            leave_type_name=request.leave_type.name,
            start_date=request.start_date,
            end_date=request.end_date,
            days_requested=request.days_requested,
            actor_id=actor_id,
        )
        db.add(event)
        return event

    @staticmethod
    def pending_events(db: Session, limit: int = 100) -> List[LeaveEvent]:
        return (
            db.query(LeaveEvent)
            .filter(LeaveEvent.dispatched_at.is_(None))
            .order_by(LeaveEvent.id)
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_dispatched(db: Session, event_ids: Iterable[int]) -> int:
        ids = list(event_ids)
        if not ids:
            return 0
        updated = (
            db.query(LeaveEvent)
            .filter(LeaveEvent.id.in_(ids), LeaveEvent.dispatched_at.is_(None))
            .update({LeaveEvent.dispatched_at: datetime.now(timezone.utc)}, synchronize_session=False)
        )
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        return updated
