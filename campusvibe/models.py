from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, Boolean, JSON, UniqueConstraint
import enum
import os
import uuid
from datetime import datetime, timezone

import pytz
from sqlalchemy.orm import relationship

from .database import Base

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Kolkata")


def local_now() -> datetime:
    """Current time in APP_TIMEZONE, stored naive like the rest of the schema."""
    return datetime.now(pytz.timezone(APP_TIMEZONE)).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Role(str, enum.Enum):
    student = "student"
    committee = "committee"
    admin = "admin"


class GroupType(str, enum.Enum):
    single = "single"
    duo = "duo"
    trio = "trio"

    @property
    def size(self) -> int:
        return GROUP_SIZES[self]


GROUP_SIZES = {GroupType.single: 1, GroupType.duo: 2, GroupType.trio: 3}


class PaymentStatus(str, enum.Enum):
    paid = "paid"
    unpaid = "unpaid"
    pending_proof = "pending_proof"
    rejected = "rejected"


class EventStatus(str, enum.Enum):
    draft = "draft"
    published = "published"
    cancelled = "cancelled"


class AttendanceSource(str, enum.Enum):
    qr = "qr"
    manual = "manual"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), default="")
    password_hash = Column(String(255), nullable=False)
    mobile = Column(String(50), default="")
    roll_number = Column(String(50), default="")
    role = Column(Enum(Role, name="user_role"), default=Role.student, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    tickets = relationship("Ticket", back_populates="user", foreign_keys="Ticket.user_id")


class Event(Base):
    __tablename__ = "events"
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False, default=_new_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    category = Column(String(100), default="")
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    location = Column(String(255), default="")
    capacity = Column(Integer, nullable=True)
    # Monotonic count of issued tickets; guarded against capacity with a conditional update
    tickets_issued = Column(Integer, default=0, nullable=False)
    price_cents = Column(Integer, default=0, nullable=False)
    price_single_cents = Column(Integer, nullable=True)
    price_duo_cents = Column(Integer, nullable=True)
    price_trio_cents = Column(Integer, nullable=True)
    allowed_tiers = Column(JSON, nullable=True)
    currency = Column(String(10), default="INR", nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(Enum(EventStatus, name="event_status"), default=EventStatus.published, nullable=False)
    visibility = Column(String(20), default="public", nullable=False)
    bank_account_no = Column(String(50), nullable=True)
    bank_ifsc = Column(String(20), nullable=True)
    bank_account_name = Column(String(255), nullable=True)
    upi_id = Column(String(100), nullable=True)
    upi_qr_url = Column(String(500), nullable=True)
    payment_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    owner = relationship("User")
    tickets = relationship("Ticket", back_populates="event")
    discounts = relationship("Discount", back_populates="event")

    @property
    def allowed_tier_set(self):
        tiers = self.allowed_tiers or [GroupType.single.value]
        return {GroupType(t) for t in tiers}

    @property
    def sold(self):
        return self.tickets_issued or 0

    @property
    def remaining(self):
        if self.capacity is None:
            return None
        return max(0, self.capacity - (self.tickets_issued or 0))

    @property
    def payment_details(self):
        return {
            "bank_account_no": self.bank_account_no,
            "bank_ifsc": self.bank_ifsc,
            "bank_account_name": self.bank_account_name,
            "upi_id": self.upi_id,
            "upi_qr_url": self.upi_qr_url,
            "payment_notes": self.payment_notes,
        }


class Discount(Base):
    __tablename__ = "discounts"
    __table_args__ = (
        UniqueConstraint("event_id", "code", name="uq_discounts_event_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    code = Column(String(50), nullable=False)
    percentage = Column(Integer, nullable=True)
    amount_cents = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    event = relationship("Event", back_populates="discounts")


class WaitlistEntry(Base):
    __tablename__ = "waitlist"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_waitlist_event_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    user = relationship("User")


class Ticket(Base):
    __tablename__ = "tickets"
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False, default=_new_uuid)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    group_type = Column(Enum(GroupType, name="group_type"), default=GroupType.single, nullable=False)
    participants = Column(JSON, nullable=False, default=list)
    payment_status = Column(Enum(PaymentStatus, name="payment_status"), default=PaymentStatus.unpaid, nullable=False)
    payment_method = Column(String(50), nullable=True)
    amount_due_cents = Column(Integer, default=0, nullable=False)
    amount_paid_cents = Column(Integer, default=0, nullable=False)
    discount_code = Column(String(50), nullable=True)
    proof_txn_id = Column(String(100), nullable=True)
    proof_image_url = Column(String(500), nullable=True)
    proof_submitted_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    checked_in = Column(Boolean, default=False, nullable=False)
    qr_payload = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="tickets", foreign_keys=[user_id])
    event = relationship("Event", back_populates="tickets")
    reviewer = relationship("User", foreign_keys=[reviewed_by])

    @property
    def event_uuid(self):
        return self.event.uuid if self.event else None

    @property
    def event_title(self):
        return self.event.title if self.event else None


class Attendance(Base):
    """Append-only audit log of check-ins (QR scans and manual marks)."""
    __tablename__ = "attendance"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=True)
    present = Column(Boolean, default=False, nullable=False)
    timestamp = Column(DateTime, default=local_now, nullable=False)
    source = Column(Enum(AttendanceSource, name="attendance_source"), nullable=False)
    recorded_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    user = relationship("User", foreign_keys=[user_id])
    ticket = relationship("Ticket")
