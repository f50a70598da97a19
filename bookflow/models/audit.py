"""Audit log model"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Uuid

from bookflow.database import Base, utcnow


class AuditLog(Base):
    """Audit trail for booking state changes"""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"))

    # Actor information
    actor_id = Column(Uuid)  # User ID or null for system
    actor_type = Column(String(50))  # user, system, guest
    actor_name = Column(String(255))

    # Action details
    action = Column(String(100), nullable=False)  # booking.created, booking.status_changed, ...
    resource_type = Column(String(50))  # booking, hold, deposit_intent
    resource_id = Column(Uuid)

    # {"before": {...}, "after": {...}}
    data_json = Column(JSON)

    request_id = Column(String(64))

    created_at = Column(DateTime, default=utcnow)
