"""Idempotency key records"""

import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, UniqueConstraint, Uuid

from bookflow.database import Base, utcnow


class IdempotencyRecord(Base):
    """Stored result of a mutating request, keyed per tenant and operation"""
    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "scope", "idempotency_key", name="uq_idempotency_scope_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    scope = Column(String(50), nullable=False)  # hold, confirm
    idempotency_key = Column(String(255), nullable=False)
    request_hash = Column(String(64), nullable=False)

    status_code = Column(Integer, default=200)
    response_json = Column(JSON, nullable=False)
    request_id = Column(String(64))

    created_at = Column(DateTime, default=utcnow)
