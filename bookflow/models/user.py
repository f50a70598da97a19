"""Staff user model for the booking dashboards"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum, Uuid
from sqlalchemy.orm import relationship
import enum

from bookflow.database import Base, utcnow


class UserRole(str, enum.Enum):
    """Dashboard roles, lowest privilege last"""
    SUPER_ADMIN = "super_admin"
    RESTAURANT_ADMIN = "restaurant_admin"
    HOST = "host"
    STAFF_VIEWER = "staff_viewer"


ROLE_HIERARCHY = {
    UserRole.STAFF_VIEWER: 1,
    UserRole.HOST: 2,
    UserRole.RESTAURANT_ADMIN: 3,
    UserRole.SUPER_ADMIN: 4,
}


class User(Base):
    """Restaurant staff or platform operator signing in to the dashboard"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"))  # None for super admins

    email = Column(String(255), unique=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    full_name = Column(String(255))
    phone = Column(String(20))

    role = Column(Enum(UserRole), default=UserRole.STAFF_VIEWER)

    is_active = Column(Boolean, default=True)

    # Latest issued refresh token; cleared on logout
    refresh_token = Column(String(500))

    last_login = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="users")

    def has_permission(self, required_role: UserRole) -> bool:
        """True when the user sits at or above ``required_role`` in the ladder"""
        return ROLE_HIERARCHY.get(self.role, 0) >= ROLE_HIERARCHY.get(required_role, 0)

    @property
    def is_staff(self) -> bool:
        """Hosts and above may act on bookings"""
        return self.has_permission(UserRole.HOST)
