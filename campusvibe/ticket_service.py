import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from campusvibe import models
from campusvibe.errors import (
    EventClosedError,
    EventFullError,
    EventNotFoundError,
    AuthorizationError,
    PaymentStateError,
    TicketNotFoundError,
    TierNotAllowedError,
    ValidationError,
)
from campusvibe.permissions import authorize, ensure_event_manager
from campusvibe.pricing import DiscountLedger, apply_discount, resolve_base_price
from campusvibe.qr_signing import QRSigner, qr_data_url

logger = logging.getLogger("campusvibe.tickets")

PaymentStatus = models.PaymentStatus
GroupType = models.GroupType

REVIEW_DECISIONS = ("approve", "reject")
# Proof must be on file before a reviewer can act; rejected tickets may still be approved
APPROVABLE_STATUSES = (PaymentStatus.pending_proof, PaymentStatus.rejected)
REJECTABLE_STATUSES = (PaymentStatus.pending_proof,)


@dataclass
class IssueResult:
    ticket: models.Ticket
    qr_payload: Optional[str] = None
    qr_image: Optional[str] = None
    payment_details: Optional[dict] = None


def _blank_participant() -> dict:
    return {"name": "", "roll_number": ""}


def normalize_participants(user: models.User, group_type: GroupType, participants) -> List[dict]:
    """Pad or truncate descriptors to the tier size; slot one defaults to the requester."""
    size = GroupType(group_type).size
    slots = []
    for raw in list(participants or [])[:size]:
        raw = raw or {}
        slots.append({
            "name": (raw.get("name") or "").strip(),
            "roll_number": (raw.get("roll_number") or "").strip(),
        })
    while len(slots) < size:
        slots.append(_blank_participant())

    first = slots[0]
    if not first["name"]:
        first["name"] = user.name or ""
    if not first["roll_number"]:
        first["roll_number"] = user.roll_number or ""
    return slots


class TicketIssuer:
    def __init__(self, db: Session, signer: QRSigner):
        self.db = db
        self.signer = signer
        self.ledger = DiscountLedger(db)

    def _get_event(self, event_uuid: str) -> models.Event:
        event = self.db.query(models.Event).filter(models.Event.uuid == event_uuid).first()
        if not event:
            logger.error(f"Event {event_uuid} not found")
            raise EventNotFoundError()
        return event

    def _get_ticket(self, ticket_uuid: str) -> models.Ticket:
        ticket = self.db.query(models.Ticket).filter(models.Ticket.uuid == ticket_uuid).first()
        if not ticket:
            logger.error(f"Ticket {ticket_uuid} not found")
            raise TicketNotFoundError()
        return ticket

    def _reserve_seat(self, event: models.Event) -> bool:
        """Count-and-claim in one statement so concurrent issuers cannot overshoot capacity."""
        updated = self.db.query(models.Event).filter(
            models.Event.id == event.id,
            or_(models.Event.capacity.is_(None), models.Event.tickets_issued < models.Event.capacity),
        ).update({models.Event.tickets_issued: models.Event.tickets_issued + 1}, synchronize_session=False)
        return updated == 1

    def _mark_paid(self, ticket: models.Ticket) -> str:
        ticket.payment_status = PaymentStatus.paid
        ticket.amount_paid_cents = ticket.amount_due_cents
        ticket.qr_payload = self.signer.sign_ticket(ticket)
        return ticket.qr_payload

    def issue_ticket(self, event_uuid: str, user: models.User, group_type, participants=None,
                     discount_code: Optional[str] = None, payment_method: Optional[str] = None) -> IssueResult:
        authorize(user, "issue_ticket")
        logger.debug(f"User {user.id} requesting {group_type} ticket for event {event_uuid}")
        event = self._get_event(event_uuid)
        if models.EventStatus(event.status) != models.EventStatus.published:
            logger.info(f"Event {event.id} is {models.EventStatus(event.status).value}; registration refused")
            raise EventClosedError(status=models.EventStatus(event.status).value)

        try:
            group_type = GroupType(group_type)
        except ValueError:
            raise TierNotAllowedError(f"Unknown ticket tier '{group_type}'")
        if group_type not in event.allowed_tier_set:
            logger.error(f"Tier {group_type.value} not allowed for event {event.id}")
            raise TierNotAllowedError()

        slots = normalize_participants(user, group_type, participants)
        base_price = resolve_base_price(event, group_type)

        try:
            if not self._reserve_seat(event):
                logger.info(f"Event {event.id} is full; user {user.id} should be offered the waitlist")
                raise EventFullError(event_id=event.uuid)

            discount = self.ledger.claim(event, discount_code)
            amount_due = apply_discount(base_price, discount)

            ticket = models.Ticket(
                user_id=user.id,
                event_id=event.id,
                group_type=group_type,
                participants=slots,
                payment_status=PaymentStatus.unpaid,
                payment_method=payment_method,
                amount_due_cents=amount_due,
                amount_paid_cents=0,
                discount_code=discount.code if discount else None,
            )
            ticket.event = event
            self.db.add(ticket)
            self.db.flush()

            qr_payload = None
            if amount_due == 0:
                qr_payload = self._mark_paid(ticket)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ticket)
        logger.info(f"Issued ticket {ticket.uuid} ({group_type.value}, due {amount_due}) to user {user.id} for event {event.id}")

        if qr_payload:
            return IssueResult(ticket=ticket, qr_payload=qr_payload, qr_image=qr_data_url(qr_payload))
        return IssueResult(ticket=ticket, payment_details=event.payment_details)

    def submit_payment_proof(self, ticket_uuid: str, user: models.User, transaction_reference: str,
                             proof_image_url: Optional[str] = None) -> models.Ticket:
        authorize(user, "submit_payment_proof")
        ticket = self._get_ticket(ticket_uuid)
        if ticket.user_id != user.id:
            logger.error(f"User {user.id} tried to submit proof for ticket {ticket.uuid} owned by {ticket.user_id}")
            raise AuthorizationError("Only the ticket owner can submit payment proof")

        reference = (transaction_reference or "").strip()
        if not reference:
            raise ValidationError("Transaction reference is required")
        if ticket.payment_status == PaymentStatus.paid:
            raise PaymentStateError("Ticket is already paid")

        ticket.payment_status = PaymentStatus.pending_proof
        ticket.proof_txn_id = reference
        ticket.proof_image_url = proof_image_url
        ticket.proof_submitted_at = models.local_now()
        self.db.commit()
        self.db.refresh(ticket)
        logger.info(f"User {user.id} submitted payment proof for ticket {ticket.uuid}")
        return ticket

    def review_payment(self, ticket_uuid: str, reviewer: models.User, decision: str,
                       reason: Optional[str] = None) -> models.Ticket:
        authorize(reviewer, "review_payment")
        if decision not in REVIEW_DECISIONS:
            raise ValidationError("Invalid decision. Use 'approve' or 'reject'.")
        ticket = self._get_ticket(ticket_uuid)
        ensure_event_manager(reviewer, ticket.event)

        status = PaymentStatus(ticket.payment_status)
        if decision == "approve":
            if status == PaymentStatus.paid:
                logger.info(f"Ticket {ticket.uuid} already paid; approval is a no-op")
                return ticket
            if status not in APPROVABLE_STATUSES:
                raise PaymentStateError("No payment proof has been submitted for this ticket")
            self._mark_paid(ticket)
            ticket.rejection_reason = None
        else:
            if status == PaymentStatus.paid:
                raise PaymentStateError("A paid ticket cannot be rejected")
            if status not in REJECTABLE_STATUSES:
                raise PaymentStateError("Only tickets awaiting proof review can be rejected")
            ticket.payment_status = PaymentStatus.rejected
            ticket.rejection_reason = (reason or "").strip() or None

        ticket.reviewed_by = reviewer.id
        ticket.reviewed_at = models.local_now()
        self.db.commit()
        self.db.refresh(ticket)
        logger.info(f"Reviewer {reviewer.id} {decision}d payment for ticket {ticket.uuid}")
        return ticket

    def pending_reviews(self, event_uuid: str, reviewer: models.User) -> List[models.Ticket]:
        authorize(reviewer, "review_payment")
        event = self._get_event(event_uuid)
        ensure_event_manager(reviewer, event)
        return self.db.query(models.Ticket).filter(
            models.Ticket.event_id == event.id,
            models.Ticket.payment_status == PaymentStatus.pending_proof,
        ).order_by(models.Ticket.proof_submitted_at.asc()).all()

    def tickets_for_user(self, user: models.User) -> List[models.Ticket]:
        return self.db.query(models.Ticket).filter(
            models.Ticket.user_id == user.id
        ).order_by(models.Ticket.created_at.desc()).all()

    def get_visible_ticket(self, ticket_uuid: str, user: models.User) -> models.Ticket:
        """Owners read their tickets; the event's organizers and admins read any."""
        ticket = self._get_ticket(ticket_uuid)
        if ticket.user_id == user.id:
            return ticket
        ensure_event_manager(user, ticket.event)
        return ticket
