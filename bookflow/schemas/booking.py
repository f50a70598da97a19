"""Booking flow schemas"""

import re
from datetime import date, datetime
from typing import Optional, List, Literal
from uuid import UUID
from pydantic import BaseModel, Field, field_validator


NAME_PATTERN = re.compile(r"^(?:[^\W\d_]|[\s'\-])+$")
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
UNSAFE_TEXT_PATTERN = re.compile(r"<script|javascript:|onerror=|onclick=", re.IGNORECASE)


class GuestDetails(BaseModel):
    """
    Guest contact details collected before confirmation.

    Used both for client-side pre-flight validation and by the confirm
    endpoint, so the two sides accept exactly the same input.
    """
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=100)
    phone: str
    special_requests: Optional[str] = Field(default=None, max_length=500)
    payment_intent_id: Optional[str] = None

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def validate_name(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if value and not NAME_PATTERN.match(value):
                raise ValueError("may only contain letters, spaces, hyphens and apostrophes")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if ".." in value or not EMAIL_PATTERN.match(value):
                raise ValueError("is not a valid email address")
        return value

    @field_validator("phone", mode="before")
    @classmethod
    def validate_phone(cls, value):
        if isinstance(value, str):
            value = re.sub(r"[\s\-()]", "", value)
            if not PHONE_PATTERN.match(value):
                raise ValueError("must be a valid phone number, e.g. +14155550123")
        return value

    @field_validator("special_requests", mode="before")
    @classmethod
    def validate_special_requests(cls, value):
        if isinstance(value, str):
            value = value.strip() or None
            if value and UNSAFE_TEXT_PATTERN.search(value):
                raise ValueError("contains invalid content")
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class DepositProof(BaseModel):
    """Deposit evidence attached to a confirmation"""
    required: bool = False
    amount_cents: int = Field(default=0, ge=0)
    paid: bool = False
    payment_intent_id: Optional[str] = None


class EffectiveDepositPolicy(BaseModel):
    """Deposit rules resolved for one party size"""
    required: bool = False
    amount: float = 0.0
    amount_cents: int = 0
    description: Optional[str] = None
    label: Optional[str] = None


class AvailabilityRequest(BaseModel):
    """Availability query"""
    party_size: int
    service_date: date


class TimeSlot(BaseModel):
    """Bookable start time"""
    time: datetime
    available_tables: int
    optimal: bool = False
    revenue_projection_cents: int = 0


class AvailabilityResponse(BaseModel):
    """Availability query result"""
    slots: List[TimeSlot] = []
    alternatives: List[TimeSlot] = []
    deposit_policy: Optional[EffectiveDepositPolicy] = None
    reason: Optional[str] = None  # HOLIDAY, CLOSED_OR_NO_HOURS
    request_id: Optional[str] = None


class SlotRef(BaseModel):
    time: datetime


class HoldRequest(BaseModel):
    """Create hold request"""
    party_size: int
    slot: SlotRef
    table_id: Optional[UUID] = None


class HoldResponse(BaseModel):
    """Created hold"""
    hold_id: UUID
    expires_at: datetime
    table_identifiers: List[str] = []
    request_id: Optional[str] = None


class ConfirmRequest(BaseModel):
    """Convert a hold into a reservation"""
    hold_id: UUID
    guest_details: GuestDetails
    deposit: Optional[DepositProof] = None


class ReservationSummary(BaseModel):
    """Human-facing reservation summary in tenant-local time"""
    date: str
    time: str
    party_size: int
    table_info: Optional[str] = None
    deposit_required: bool = False
    deposit_amount: float = 0.0


class ReservationResponse(BaseModel):
    """Confirmation result"""
    reservation_id: UUID
    confirmation_number: str
    status: str
    summary: ReservationSummary
    request_id: Optional[str] = None


class ReservationReadBack(BaseModel):
    """Minimal reservation read-back used by the verification step"""
    id: UUID
    status: str
    booking_time: datetime
    party_size: int

    class Config:
        from_attributes = True


class BookingStatusUpdate(BaseModel):
    """Staff status change"""
    status: Literal["pending", "confirmed", "seated", "completed", "cancelled", "noshow"]
    reason: Optional[str] = None


class BookingApproval(BaseModel):
    """Approve or decline a pending request"""
    action: Literal["approve", "decline"]
    reason: Optional[str] = None


class BookingResponse(BaseModel):
    """Staff view of a booking"""
    id: UUID
    tenant_id: UUID
    hold_id: Optional[UUID]
    table_id: Optional[UUID]
    guest_name: str
    guest_email: str
    guest_phone: Optional[str]
    party_size: int
    booking_time: datetime
    duration_minutes: int
    special_requests: Optional[str]
    source: Optional[str]
    status: str
    confirmation_code: Optional[str]
    deposit_required: bool
    deposit_amount_cents: int
    deposit_paid: bool
    payment_intent_id: Optional[str]
    confirmation_sent: Optional[datetime]
    reminder_sent: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    """Paginated booking list"""
    items: List[BookingResponse]
    total: int
    page: int
    page_size: int
