import json

import pytest

from campusvibe import models
from campusvibe.database import SessionLocal
from campusvibe.errors import (
    AuthorizationError,
    EventClosedError,
    EventFullError,
    EventNotFoundError,
    PaymentStateError,
    TierNotAllowedError,
    ValidationError,
)
from campusvibe.pricing import DiscountLedger
from campusvibe.ticket_service import TicketIssuer, normalize_participants

PaymentStatus = models.PaymentStatus


@pytest.fixture
def issuer(db, signer):
    return TicketIssuer(db, signer)


def test_free_event_with_one_seat(issuer, make_event, make_user):
    event = make_event(capacity=1, price_cents=0)
    first_user, second_user = make_user(), make_user()

    result = issuer.issue_ticket(event.uuid, first_user, "single")
    assert result.ticket.payment_status == PaymentStatus.paid
    assert result.qr_payload
    assert result.qr_image.startswith("data:image/png;base64,")
    assert result.payment_details is None
    assert json.loads(result.qr_payload)["ticket_id"] == result.ticket.uuid

    with pytest.raises(EventFullError) as exc:
        issuer.issue_ticket(event.uuid, second_user, "single")
    assert exc.value.context["waitlist_available"] is True
    assert exc.value.status_code == 409


def test_issued_count_never_exceeds_capacity(db, issuer, make_event, make_user):
    event = make_event(capacity=3)
    issued = 0
    for _ in range(6):
        try:
            issuer.issue_ticket(event.uuid, make_user(), "single")
            issued += 1
        except EventFullError:
            pass
    db.refresh(event)
    assert issued == 3
    assert event.tickets_issued == 3
    assert event.remaining == 0
    assert db.query(models.Ticket).filter(models.Ticket.event_id == event.id).count() == 3


def test_stale_seat_count_cannot_oversell(db, issuer, make_event, make_user):
    event = make_event(capacity=1)
    assert event.tickets_issued == 0

    other = SessionLocal()
    try:
        other.query(models.Event).filter(models.Event.id == event.id).update(
            {models.Event.tickets_issued: 1}, synchronize_session=False
        )
        other.commit()
    finally:
        other.close()

    # The in-memory event still reads 0 issued; the guarded update sees the committed 1
    assert event.tickets_issued == 0
    assert issuer._reserve_seat(event) is False
    db.rollback()

    with pytest.raises(EventFullError):
        issuer.issue_ticket(event.uuid, make_user(), "single")
    db.refresh(event)
    assert event.tickets_issued == 1
    assert db.query(models.Ticket).filter(models.Ticket.event_id == event.id).count() == 0


def test_unlimited_capacity(issuer, make_event, make_user):
    event = make_event(capacity=None)
    for _ in range(5):
        issuer.issue_ticket(event.uuid, make_user(), "single")


def test_paid_event_returns_payment_details(issuer, make_event, student):
    event = make_event(price_cents=9000)
    result = issuer.issue_ticket(event.uuid, student, "single", payment_method="upi")

    assert result.ticket.payment_status == PaymentStatus.unpaid
    assert result.ticket.amount_due_cents == 9000
    assert result.ticket.qr_payload is None
    assert result.qr_payload is None
    assert result.payment_details["upi_id"] == "fest@upi"


def test_discount_code_is_applied_and_counted(db, issuer, make_event, student):
    event = make_event(price_cents=9000)
    DiscountLedger(db).create(event, "SAVE10", percentage=10)

    ticket = issuer.issue_ticket(event.uuid, student, "single", discount_code="save10").ticket
    assert ticket.amount_due_cents == 8100
    assert ticket.discount_code == "SAVE10"
    assert DiscountLedger(db).lookup(event, "SAVE10").used_count == 1


def test_unknown_discount_code_keeps_full_price(issuer, make_event, student):
    event = make_event(price_cents=9000)
    ticket = issuer.issue_ticket(event.uuid, student, "single", discount_code="FAKE").ticket
    assert ticket.amount_due_cents == 9000
    assert ticket.discount_code is None


def test_full_discount_issues_a_paid_ticket(db, issuer, make_event, student):
    event = make_event(price_cents=9000)
    DiscountLedger(db).create(event, "FREEPASS", percentage=100)
    result = issuer.issue_ticket(event.uuid, student, "single", discount_code="FREEPASS")
    assert result.ticket.payment_status == PaymentStatus.paid
    assert result.qr_payload


def test_full_event_does_not_consume_discount(db, issuer, make_event, make_user):
    event = make_event(capacity=1, price_cents=9000)
    DiscountLedger(db).create(event, "SAVE10", percentage=10)
    issuer.issue_ticket(event.uuid, make_user(), "single")

    with pytest.raises(EventFullError):
        issuer.issue_ticket(event.uuid, make_user(), "single", discount_code="SAVE10")
    assert DiscountLedger(db).lookup(event, "SAVE10").used_count == 0


def test_tier_not_allowed(issuer, make_event, student):
    event = make_event(allowed_tiers=["single"])
    with pytest.raises(TierNotAllowedError):
        issuer.issue_ticket(event.uuid, student, "duo")
    with pytest.raises(TierNotAllowedError):
        issuer.issue_ticket(event.uuid, student, "quartet")


def test_unknown_event(issuer, student):
    with pytest.raises(EventNotFoundError):
        issuer.issue_ticket("no-such-event", student, "single")


@pytest.mark.parametrize("status", [models.EventStatus.draft, models.EventStatus.cancelled])
def test_unpublished_event_refuses_registration(db, issuer, make_event, student, status):
    event = make_event(status=status)
    with pytest.raises(EventClosedError) as exc:
        issuer.issue_ticket(event.uuid, student, "single")
    assert exc.value.status_code == 409
    db.refresh(event)
    assert event.tickets_issued == 0


def test_group_ticket_price_and_participants(issuer, make_event, student):
    event = make_event(price_cents=500, allowed_tiers=["single", "trio"])
    ticket = issuer.issue_ticket(
        event.uuid, student, "trio",
        participants=[{"name": "", "roll_number": ""}, {"name": "Ravi", "roll_number": "R900"}],
    ).ticket

    assert ticket.amount_due_cents == 1500
    assert len(ticket.participants) == 3
    assert ticket.participants[0] == {"name": student.name, "roll_number": student.roll_number}
    assert ticket.participants[1]["name"] == "Ravi"
    assert ticket.participants[2] == {"name": "", "roll_number": ""}


def test_participants_are_truncated_to_tier_size(student):
    slots = normalize_participants(student, models.GroupType.duo, [
        {"name": "A"}, {"name": "B"}, {"name": "C"},
    ])
    assert [s["name"] for s in slots] == ["A", "B"]


class TestPaymentReview:

    @pytest.fixture
    def ticket(self, issuer, make_event, student):
        event = make_event(price_cents=9000)
        return issuer.issue_ticket(event.uuid, student, "single").ticket

    def test_owner_submits_proof(self, issuer, ticket, student):
        ticket = issuer.submit_payment_proof(ticket.uuid, student, " UTR123 ", "https://cdn/proof.png")
        assert ticket.payment_status == PaymentStatus.pending_proof
        assert ticket.proof_txn_id == "UTR123"
        assert ticket.proof_submitted_at is not None

    def test_proof_requires_reference(self, issuer, ticket, student):
        with pytest.raises(ValidationError):
            issuer.submit_payment_proof(ticket.uuid, student, "   ")

    def test_only_owner_submits_proof(self, issuer, ticket, make_user):
        with pytest.raises(AuthorizationError):
            issuer.submit_payment_proof(ticket.uuid, make_user(), "UTR123")

    def test_approve_marks_paid_and_signs_qr(self, issuer, signer, ticket, student, organizer):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        ticket = issuer.review_payment(ticket.uuid, organizer, "approve")

        assert ticket.payment_status == PaymentStatus.paid
        assert ticket.amount_paid_cents == 9000
        assert ticket.reviewed_by == organizer.id
        assert ticket.reviewed_at is not None
        payload = json.loads(ticket.qr_payload)
        assert payload["user_id"] == student.id
        assert payload["event_id"] == ticket.event.uuid

    def test_holder_and_reviewer_are_separate_relationships(self, db, issuer, ticket, student, organizer):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        ticket = issuer.review_payment(ticket.uuid, organizer, "approve")
        db.refresh(student)
        assert ticket.user.id == student.id
        assert ticket.reviewer.id == organizer.id
        assert [t.uuid for t in student.tickets] == [ticket.uuid]
        assert organizer.tickets == []

    def test_reject_then_resubmit_then_approve(self, issuer, ticket, student, organizer):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        ticket = issuer.review_payment(ticket.uuid, organizer, "reject", "Amount mismatch")
        assert ticket.payment_status == PaymentStatus.rejected
        assert ticket.rejection_reason == "Amount mismatch"
        assert ticket.qr_payload is None

        issuer.submit_payment_proof(ticket.uuid, student, "UTR456")
        ticket = issuer.review_payment(ticket.uuid, organizer, "approve")
        assert ticket.payment_status == PaymentStatus.paid
        assert ticket.rejection_reason is None

    def test_paid_ticket_cannot_be_rejected_or_resubmitted(self, issuer, ticket, student, organizer):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        issuer.review_payment(ticket.uuid, organizer, "approve")
        with pytest.raises(PaymentStateError):
            issuer.review_payment(ticket.uuid, organizer, "reject")
        with pytest.raises(PaymentStateError):
            issuer.submit_payment_proof(ticket.uuid, student, "UTR789")

    def test_approving_twice_is_a_no_op(self, issuer, ticket, student, organizer):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        first = issuer.review_payment(ticket.uuid, organizer, "approve").qr_payload
        second = issuer.review_payment(ticket.uuid, organizer, "approve").qr_payload
        assert first == second

    def test_ticket_without_proof_cannot_be_reviewed(self, db, issuer, ticket, organizer):
        with pytest.raises(PaymentStateError):
            issuer.review_payment(ticket.uuid, organizer, "approve")
        with pytest.raises(PaymentStateError):
            issuer.review_payment(ticket.uuid, organizer, "reject")
        db.refresh(ticket)
        assert ticket.payment_status == PaymentStatus.unpaid
        assert ticket.qr_payload is None
        assert ticket.reviewed_by is None

    def test_rejected_ticket_cannot_be_rejected_again(self, issuer, ticket, student, organizer):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        issuer.review_payment(ticket.uuid, organizer, "reject")
        with pytest.raises(PaymentStateError):
            issuer.review_payment(ticket.uuid, organizer, "reject")

    def test_students_cannot_review(self, issuer, ticket, student):
        with pytest.raises(AuthorizationError):
            issuer.review_payment(ticket.uuid, student, "approve")

    def test_other_committee_cannot_review(self, issuer, ticket, make_user):
        outsider = make_user(models.Role.committee)
        with pytest.raises(AuthorizationError):
            issuer.review_payment(ticket.uuid, outsider, "approve")

    def test_admin_can_review_any_event(self, issuer, ticket, student, admin):
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        assert issuer.review_payment(ticket.uuid, admin, "approve").payment_status == PaymentStatus.paid

    def test_pending_reviews_lists_submitted_proofs(self, issuer, ticket, student, organizer):
        assert issuer.pending_reviews(ticket.event.uuid, organizer) == []
        issuer.submit_payment_proof(ticket.uuid, student, "UTR123")
        assert [t.uuid for t in issuer.pending_reviews(ticket.event.uuid, organizer)] == [ticket.uuid]


def test_ticket_visibility(issuer, make_event, student, organizer, make_user):
    event = make_event()
    ticket = issuer.issue_ticket(event.uuid, student, "single").ticket

    assert issuer.get_visible_ticket(ticket.uuid, student).uuid == ticket.uuid
    assert issuer.get_visible_ticket(ticket.uuid, organizer).uuid == ticket.uuid
    with pytest.raises(AuthorizationError):
        issuer.get_visible_ticket(ticket.uuid, make_user())
    assert [t.uuid for t in issuer.tickets_for_user(student)] == [ticket.uuid]
