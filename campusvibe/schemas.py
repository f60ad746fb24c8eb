from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from campusvibe.models import Role, GroupType, PaymentStatus, EventStatus, AttendanceSource


# Users

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = ""
    mobile: Optional[str] = ""
    roll_number: Optional[str] = ""


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class User(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    mobile: Optional[str] = None
    roll_number: Optional[str] = None
    role: Role
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    user: User


class RoleUpdate(BaseModel):
    role: Role


# Events

class EventBase(BaseModel):
    title: str
    description: Optional[str] = ""
    category: Optional[str] = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    location: Optional[str] = ""
    capacity: Optional[int] = Field(default=None, ge=0)
    price_cents: int = Field(default=0, ge=0)
    price_single_cents: Optional[int] = Field(default=None, ge=0)
    price_duo_cents: Optional[int] = Field(default=None, ge=0)
    price_trio_cents: Optional[int] = Field(default=None, ge=0)
    allowed_tiers: List[GroupType] = [GroupType.single]
    currency: str = "INR"
    status: EventStatus = EventStatus.published
    visibility: str = Field(default="public", pattern="^(public|private)$")
    bank_account_no: Optional[str] = None
    bank_ifsc: Optional[str] = None
    bank_account_name: Optional[str] = None
    upi_id: Optional[str] = None
    upi_qr_url: Optional[str] = None
    payment_notes: Optional[str] = None


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    price_cents: Optional[int] = Field(default=None, ge=0)
    price_single_cents: Optional[int] = Field(default=None, ge=0)
    price_duo_cents: Optional[int] = Field(default=None, ge=0)
    price_trio_cents: Optional[int] = Field(default=None, ge=0)
    allowed_tiers: Optional[List[GroupType]] = None
    status: Optional[EventStatus] = None
    visibility: Optional[str] = Field(default=None, pattern="^(public|private)$")
    bank_account_no: Optional[str] = None
    bank_ifsc: Optional[str] = None
    bank_account_name: Optional[str] = None
    upi_id: Optional[str] = None
    upi_qr_url: Optional[str] = None
    payment_notes: Optional[str] = None


class EventSchema(BaseModel):
    uuid: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    capacity: Optional[int] = None
    tickets_issued: int
    sold: int
    remaining: Optional[int] = None
    price_cents: int
    price_single_cents: Optional[int] = None
    price_duo_cents: Optional[int] = None
    price_trio_cents: Optional[int] = None
    allowed_tiers: Optional[List[str]] = None
    currency: str
    status: EventStatus
    visibility: str
    created_by: int

    class Config:
        from_attributes = True


class PaymentDetails(BaseModel):
    bank_account_no: Optional[str] = None
    bank_ifsc: Optional[str] = None
    bank_account_name: Optional[str] = None
    upi_id: Optional[str] = None
    upi_qr_url: Optional[str] = None
    payment_notes: Optional[str] = None


# Discounts

class DiscountCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    percentage: Optional[int] = Field(default=None, ge=0, le=100)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)


class DiscountSchema(BaseModel):
    id: int
    code: str
    percentage: Optional[int] = None
    amount_cents: Optional[int] = None
    max_uses: Optional[int] = None
    used_count: int
    active: bool

    class Config:
        from_attributes = True


class PriceQuote(BaseModel):
    group_type: GroupType
    base_price_cents: int
    amount_due_cents: int
    discount_applied: bool


# Tickets

class Participant(BaseModel):
    name: Optional[str] = ""
    roll_number: Optional[str] = ""


class TicketRequest(BaseModel):
    group_type: GroupType = GroupType.single
    participants: List[Participant] = []
    discount_code: Optional[str] = None
    payment_method: Optional[str] = None


class TicketSchema(BaseModel):
    uuid: str
    event_uuid: str
    event_title: str
    user_id: int
    group_type: GroupType
    participants: List[Participant]
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    amount_due_cents: int
    amount_paid_cents: int
    discount_code: Optional[str] = None
    proof_txn_id: Optional[str] = None
    proof_image_url: Optional[str] = None
    proof_submitted_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    checked_in: bool
    qr_payload: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TicketIssueResponse(BaseModel):
    ticket: TicketSchema
    qr_payload: Optional[str] = None
    qr_image: Optional[str] = None
    payment_details: Optional[PaymentDetails] = None


class PaymentProofRequest(BaseModel):
    transaction_reference: str
    proof_image_url: Optional[str] = None


class PaymentReviewRequest(BaseModel):
    decision: str = Field(pattern="^(approve|reject)$")
    reason: Optional[str] = None


# Attendance

class ScanRequest(BaseModel):
    code: str


class CheckInResponse(BaseModel):
    already: bool
    ticket_id: str
    event_title: str
    name: str
    email: str
    mobile: str
    participants: List[Participant]
    checked_in_at: Optional[datetime] = None


class ManualCheckInRequest(BaseModel):
    event_id: Optional[str] = None
    user_id: Optional[int] = None
    present: bool = True


class AttendanceSchema(BaseModel):
    id: int
    event_id: int
    user_id: int
    ticket_id: Optional[int] = None
    present: bool
    timestamp: datetime
    source: AttendanceSource
    recorded_by: Optional[int] = None

    class Config:
        from_attributes = True


class AttendanceOverviewRow(BaseModel):
    user_id: int
    name: str
    email: str
    tickets: List[str]
    ticket_checked_in: bool
    manual_present: Optional[bool] = None
    manual_marked_at: Optional[datetime] = None


# Waitlist

class WaitlistEntrySchema(BaseModel):
    user_id: int
    name: Optional[str] = None
    email: str
    created_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    message: str
