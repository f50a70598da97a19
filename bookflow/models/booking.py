"""Booking and hold models"""

import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from bookflow.database import Base, utcnow


class BookingStatus:
    """Booking lifecycle states"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NOSHOW = "noshow"

    # Statuses that occupy a table
    ACTIVE = (PENDING, CONFIRMED, SEATED)

    TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED},
        CONFIRMED: {SEATED, CANCELLED, NOSHOW},
        SEATED: {COMPLETED},
        COMPLETED: set(),
        CANCELLED: set(),
        NOSHOW: set(),
    }


class BookingHold(Base):
    """Time-boxed capacity reservation ahead of confirmation"""
    __tablename__ = "booking_holds"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    table_id = Column(Uuid, ForeignKey("restaurant_tables.id"))

    party_size = Column(Integer, nullable=False)
    booking_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, default=120)
    session_id = Column(String(64), default=lambda: uuid.uuid4().hex)

    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)

    def is_expired(self, now) -> bool:
        return self.expires_at <= now


class Booking(Base):
    """Durable table reservation"""
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    hold_id = Column(Uuid, unique=True)
    table_id = Column(Uuid, ForeignKey("restaurant_tables.id"))

    # Guest information
    guest_name = Column(String(255), nullable=False)
    guest_first_name = Column(String(100))
    guest_last_name = Column(String(100))
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(20))

    # Reservation details
    party_size = Column(Integer, nullable=False)
    booking_time = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, default=120)
    special_requests = Column(Text)
    source = Column(String(50), default="website")

    # Status
    status = Column(String(50), default=BookingStatus.PENDING)  # pending, confirmed, seated, completed, cancelled, noshow
    confirmation_code = Column(String(20))

    # Deposit
    deposit_required = Column(Boolean, default=False)
    deposit_amount_cents = Column(Integer, default=0)
    deposit_paid = Column(Boolean, default=False)
    payment_intent_id = Column(String(255))

    # SMS confirmation
    confirmation_sent = Column(DateTime)
    reminder_sent = Column(DateTime)

    # Metadata
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="bookings")
