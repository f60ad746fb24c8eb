import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from campusvibe import models
from campusvibe.errors import (
    EventNotFoundError,
    NotFoundError,
    SignatureError,
    TicketMismatchError,
    TicketNotFoundError,
    TicketNotPaidError,
    ValidationError,
)
from campusvibe.permissions import authorize, ensure_event_manager
from campusvibe.qr_signing import QRSigner, parse_payload

logger = logging.getLogger("campusvibe.attendance")

PaymentStatus = models.PaymentStatus
AttendanceSource = models.AttendanceSource


@dataclass
class CheckInResult:
    already: bool
    ticket_id: str
    event_title: str
    name: str
    email: str
    mobile: str
    participants: list
    checked_in_at: Optional[datetime]


class AttendanceVerifier:
    def __init__(self, db: Session, signer: QRSigner):
        self.db = db
        self.signer = signer

    def _first_qr_timestamp(self, ticket: models.Ticket) -> Optional[datetime]:
        record = self.db.query(models.Attendance).filter(
            models.Attendance.ticket_id == ticket.id,
            models.Attendance.source == AttendanceSource.qr,
        ).order_by(models.Attendance.timestamp.asc()).first()
        return record.timestamp if record else None

    def _result(self, ticket: models.Ticket, already: bool, checked_in_at) -> CheckInResult:
        user = ticket.user
        return CheckInResult(
            already=already,
            ticket_id=ticket.uuid,
            event_title=ticket.event.title,
            name=user.name or "",
            email=user.email,
            mobile=user.mobile or "",
            participants=list(ticket.participants or []),
            checked_in_at=checked_in_at,
        )

    def _claim_check_in(self, ticket: models.Ticket) -> bool:
        """Flip checked_in false->true; True only for the caller that actually flipped it."""
        updated = self.db.query(models.Ticket).filter(
            models.Ticket.id == ticket.id,
            models.Ticket.checked_in == False,
            models.Ticket.payment_status == PaymentStatus.paid,
        ).update({models.Ticket.checked_in: True}, synchronize_session=False)
        return updated == 1

    def scan_check_in(self, raw_payload, scanner: models.User) -> CheckInResult:
        authorize(scanner, "scan_check_in")
        payload = parse_payload(raw_payload)

        if not self.signer.verify(payload):
            logger.warning(f"Rejected QR scan by user {scanner.id}: signature verification failed")
            raise SignatureError()

        ticket = self.db.query(models.Ticket).filter(models.Ticket.uuid == payload.ticket_id).first()
        if not ticket:
            logger.error(f"Scanned ticket {payload.ticket_id} not found")
            raise TicketNotFoundError()

        if ticket.user_id != payload.user_id or ticket.event.uuid != payload.event_id:
            logger.warning(f"Scanned payload for ticket {ticket.uuid} does not match stored owner/event")
            raise TicketMismatchError()

        ensure_event_manager(scanner, ticket.event)

        if ticket.payment_status != PaymentStatus.paid:
            logger.info(f"Ticket {ticket.uuid} scanned while {ticket.payment_status.value}")
            raise TicketNotPaidError()

        if ticket.checked_in:
            logger.info(f"Ticket {ticket.uuid} already checked in")
            return self._result(ticket, True, self._first_qr_timestamp(ticket))

        try:
            if not self._claim_check_in(ticket):
                self.db.rollback()
                self.db.refresh(ticket)
                if ticket.checked_in:
                    logger.info(f"Ticket {ticket.uuid} checked in by a concurrent scan")
                    return self._result(ticket, True, self._first_qr_timestamp(ticket))
                raise TicketNotPaidError()

            record = models.Attendance(
                event_id=ticket.event_id,
                user_id=ticket.user_id,
                ticket_id=ticket.id,
                present=True,
                timestamp=models.local_now(),
                source=AttendanceSource.qr,
                recorded_by=scanner.id,
            )
            self.db.add(record)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ticket)
        logger.info(f"Ticket {ticket.uuid} checked in for event {ticket.event_id} by user {scanner.id}")
        return self._result(ticket, False, record.timestamp)

    def manual_check_in(self, event_uuid: Optional[str], user_id: Optional[int], present: bool,
                        actor: models.User) -> models.Attendance:
        authorize(actor, "manual_check_in")
        if not event_uuid or user_id is None:
            raise ValidationError("event_id and user_id are required")

        event = self.db.query(models.Event).filter(models.Event.uuid == event_uuid).first()
        if not event:
            raise EventNotFoundError()
        ensure_event_manager(actor, event)

        attendee = self.db.query(models.User).filter(models.User.id == user_id).first()
        if not attendee:
            raise NotFoundError("User not found")

        ticket = self.db.query(models.Ticket).filter(
            models.Ticket.event_id == event.id,
            models.Ticket.user_id == attendee.id,
        ).order_by(models.Ticket.created_at.asc()).first()

        record = models.Attendance(
            event_id=event.id,
            user_id=attendee.id,
            ticket_id=ticket.id if ticket else None,
            present=bool(present),
            timestamp=models.local_now(),
            source=AttendanceSource.manual,
            recorded_by=actor.id,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"Manual attendance present={record.present} for user {attendee.id} at event {event.id} by user {actor.id}")
        return record

    def attendance_overview(self, event_uuid: str, actor: models.User) -> List[dict]:
        """Ticket check-in flag and latest manual mark per attendee, side by side."""
        authorize(actor, "view_attendance")
        event = self.db.query(models.Event).filter(models.Event.uuid == event_uuid).first()
        if not event:
            raise EventNotFoundError()
        ensure_event_manager(actor, event)

        rows = {}
        tickets = self.db.query(models.Ticket).filter(models.Ticket.event_id == event.id).all()
        for ticket in tickets:
            row = rows.setdefault(ticket.user_id, {
                "user_id": ticket.user_id,
                "name": ticket.user.name or "",
                "email": ticket.user.email,
                "tickets": [],
                "ticket_checked_in": False,
                "manual_present": None,
                "manual_marked_at": None,
            })
            row["tickets"].append(ticket.uuid)
            row["ticket_checked_in"] = row["ticket_checked_in"] or bool(ticket.checked_in)

        manual_records = self.db.query(models.Attendance).filter(
            models.Attendance.event_id == event.id,
            models.Attendance.source == AttendanceSource.manual,
        ).order_by(models.Attendance.timestamp.asc(), models.Attendance.id.asc()).all()
        for record in manual_records:
            row = rows.setdefault(record.user_id, {
                "user_id": record.user_id,
                "name": record.user.name or "",
                "email": record.user.email,
                "tickets": [],
                "ticket_checked_in": False,
                "manual_present": None,
                "manual_marked_at": None,
            })
            # Later records overwrite earlier ones
            row["manual_present"] = record.present
            row["manual_marked_at"] = record.timestamp

        return sorted(rows.values(), key=lambda r: (r["name"].lower(), r["user_id"]))
