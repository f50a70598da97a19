"""Restaurants and the per-restaurant configuration that drives availability"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Date, ForeignKey, Integer, JSON, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from bookflow.database import Base, utcnow


DEFAULT_HOURS = {
    "monday": {"open": "11:00", "close": "22:00"},
    "tuesday": {"open": "11:00", "close": "22:00"},
    "wednesday": {"open": "11:00", "close": "22:00"},
    "thursday": {"open": "11:00", "close": "22:00"},
    "friday": {"open": "11:00", "close": "23:00"},
    "saturday": {"open": "11:00", "close": "23:00"},
    "sunday": {"open": "12:00", "close": "21:00"},
}


class Tenant(Base):
    """A restaurant; ``slug`` is what the public widget URL carries"""
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    timezone = Column(String(50), default="America/New_York")
    currency = Column(String(3), default="USD")
    is_active = Column(Boolean, default=True)

    # Widget colours
    primary_color = Column(String(20), default="#3b82f6")
    secondary_color = Column(String(20), default="#1e40af")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    settings = relationship("RestaurantSettings", back_populates="tenant", uselist=False)
    deposit_policy = relationship("DepositPolicy", back_populates="tenant", uselist=False)
    tables = relationship("RestaurantTable", back_populates="tenant")
    holidays = relationship("Holiday", back_populates="tenant")
    staff_contacts = relationship("StaffContact", back_populates="tenant")
    bookings = relationship("Booking", back_populates="tenant")
    users = relationship("User", back_populates="tenant")


class RestaurantSettings(Base):
    """Operating rules, one row per tenant"""
    __tablename__ = "restaurant_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), unique=True, nullable=False)

    # Postal address shown in confirmations
    address = Column(Text)
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))

    # Weekday name -> {"open": "HH:MM", "close": "HH:MM"} or {"closed": true}
    hours_json = Column(JSON, default=dict)

    policies_json = Column(JSON, default=dict)
    escalation_number = Column(String(20))

    # Slot arithmetic
    approval_mode = Column(String(20), default="auto")  # "auto" confirms instantly, "manual" waits for staff
    max_party_size = Column(Integer, default=20)
    reservation_slot_minutes = Column(Integer, default=30)
    default_duration_minutes = Column(Integer, default=120)
    buffer_minutes = Column(Integer, default=10)
    pacing_cap = Column(Integer, default=0)  # max covers starting per slot, 0 disables
    average_cover_cents = Column(Integer, default=4500)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="settings")


class DepositPolicy(Base):
    """Per-tenant deposit rules for online bookings"""
    __tablename__ = "deposit_policies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), unique=True, nullable=False)

    enabled = Column(Boolean, default=False)
    # Major currency units, converted to cents at intent time
    default_amount = Column(Numeric(10, 2), default=25)
    large_party_threshold = Column(Integer, default=6)
    large_party_amount = Column(Numeric(10, 2))
    description = Column(Text)
    show_policy_label = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="deposit_policy")


class RestaurantTable(Base):
    """Physical table; availability assigns the smallest one that fits"""
    __tablename__ = "restaurant_tables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    name = Column(String(100), nullable=False)
    capacity = Column(Integer, nullable=False)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    tenant = relationship("Tenant", back_populates="tables")


class Holiday(Base):
    """Closed dates overriding the weekly hours"""
    __tablename__ = "holidays"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    holiday_date = Column(Date, nullable=False)
    name = Column(String(255))

    tenant = relationship("Tenant", back_populates="holidays")


class StaffContact(Base):
    """Who gets texted when a booking lands or needs approval"""
    __tablename__ = "staff_contacts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255))
    role = Column(String(50))  # manager, host
    notify_on_reservation = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    tenant = relationship("Tenant", back_populates="staff_contacts")
