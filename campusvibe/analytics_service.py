import logging
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from campusvibe import models
from campusvibe.errors import EventNotFoundError
from campusvibe.permissions import authorize, ensure_event_manager

logger = logging.getLogger("campusvibe.analytics")


class AnalyticsReader:
    """Read-only aggregates over tickets, attendance, discounts and the waitlist."""

    def __init__(self, db: Session):
        self.db = db

    def _event(self, event_uuid: str) -> models.Event:
        event = self.db.query(models.Event).filter(models.Event.uuid == event_uuid).first()
        if not event:
            raise EventNotFoundError()
        return event

    def _status_counts(self, *filters) -> Dict[str, int]:
        counts = {status.value: 0 for status in models.PaymentStatus}
        rows = self.db.query(models.Ticket.payment_status, func.count(models.Ticket.id)).filter(
            *filters
        ).group_by(models.Ticket.payment_status).all()
        for status, count in rows:
            counts[models.PaymentStatus(status).value] = count
        return counts

    def summarize(self, event: models.Event) -> Dict[str, Any]:
        tickets_by_status = self._status_counts(models.Ticket.event_id == event.id)

        checked_in = self.db.query(func.count(models.Ticket.id)).filter(
            models.Ticket.event_id == event.id,
            models.Ticket.checked_in == True,
        ).scalar() or 0

        attendance_by_source = {source.value: 0 for source in models.AttendanceSource}
        for source, count in self.db.query(models.Attendance.source, func.count(models.Attendance.id)).filter(
            models.Attendance.event_id == event.id
        ).group_by(models.Attendance.source).all():
            attendance_by_source[models.AttendanceSource(source).value] = count

        revenue = self.db.query(func.coalesce(func.sum(models.Ticket.amount_paid_cents), 0)).filter(
            models.Ticket.event_id == event.id,
            models.Ticket.payment_status == models.PaymentStatus.paid,
        ).scalar() or 0

        discounts = self.db.query(models.Discount).filter(
            models.Discount.event_id == event.id
        ).order_by(models.Discount.code.asc()).all()

        waitlist_size = self.db.query(func.count(models.WaitlistEntry.id)).filter(
            models.WaitlistEntry.event_id == event.id
        ).scalar() or 0

        return {
            "event_id": event.uuid,
            "title": event.title,
            "capacity": event.capacity,
            "tickets_issued": event.tickets_issued,
            "remaining": event.remaining,
            "tickets_by_status": tickets_by_status,
            "checked_in": checked_in,
            "attendance_by_source": attendance_by_source,
            "revenue_cents": int(revenue),
            "currency": event.currency,
            "discount_usage": [
                {"code": d.code, "used_count": d.used_count, "max_uses": d.max_uses, "active": d.active}
                for d in discounts
            ],
            "waitlist_size": waitlist_size,
        }

    def event_summary(self, event_uuid: str, actor: models.User) -> Dict[str, Any]:
        authorize(actor, "view_analytics")
        event = self._event(event_uuid)
        ensure_event_manager(actor, event)
        logger.debug(f"User {actor.id} reading analytics for event {event.id}")
        return self.summarize(event)

    def organizer_overview(self, actor: models.User) -> List[Dict[str, Any]]:
        authorize(actor, "view_analytics")
        query = self.db.query(models.Event)
        if models.Role(actor.role) != models.Role.admin:
            query = query.filter(models.Event.created_by == actor.id)
        events = query.order_by(models.Event.start_time.desc()).all()
        logger.info(f"User {actor.id} fetched analytics overview for {len(events)} events")
        return [self.summarize(event) for event in events]

    def admin_dashboard(self, actor: models.User) -> Dict[str, Any]:
        authorize(actor, "admin_dashboard")
        users_by_role = {role.value: 0 for role in models.Role}
        for role, count in self.db.query(models.User.role, func.count(models.User.id)).group_by(models.User.role).all():
            users_by_role[models.Role(role).value] = count

        events_by_status = {status.value: 0 for status in models.EventStatus}
        for status, count in self.db.query(models.Event.status, func.count(models.Event.id)).group_by(models.Event.status).all():
            events_by_status[models.EventStatus(status).value] = count

        return {
            "users_by_role": users_by_role,
            "events_by_status": events_by_status,
            "tickets_by_status": self._status_counts(),
            "attendance_records": self.db.query(func.count(models.Attendance.id)).scalar() or 0,
        }

    def ticket_rows(self, event_uuid: str, actor: models.User) -> List[models.Ticket]:
        authorize(actor, "view_analytics")
        event = self._event(event_uuid)
        ensure_event_manager(actor, event)
        return self.db.query(models.Ticket).filter(
            models.Ticket.event_id == event.id
        ).order_by(models.Ticket.created_at.asc()).all()
