"""Database models"""

from bookflow.models.tenant import (
    Tenant,
    RestaurantSettings,
    DepositPolicy,
    RestaurantTable,
    Holiday,
    StaffContact,
)
from bookflow.models.booking import Booking, BookingHold, BookingStatus
from bookflow.models.idempotency import IdempotencyRecord
from bookflow.models.payment import DepositIntent
from bookflow.models.audit import AuditLog
from bookflow.models.user import User, UserRole

__all__ = [
    "Tenant",
    "RestaurantSettings",
    "DepositPolicy",
    "RestaurantTable",
    "Holiday",
    "StaffContact",
    "Booking",
    "BookingHold",
    "BookingStatus",
    "IdempotencyRecord",
    "DepositIntent",
    "AuditLog",
    "User",
    "UserRole",
]
