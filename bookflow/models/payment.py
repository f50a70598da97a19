"""Deposit payment intent mirror"""

import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text, Uuid

from bookflow.database import Base, utcnow


class DepositIntent(Base):
    """Local record of a processor payment intent created for a deposit"""
    __tablename__ = "deposit_intents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    payment_intent_id = Column(String(255), unique=True, nullable=False)

    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), default="usd")
    email = Column(String(255))
    description = Column(Text)
    provider = Column(String(50), default="stripe")

    # requires_payment_method, processing, succeeded, payment_failed, canceled
    status = Column(String(50), default="requires_payment_method")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
