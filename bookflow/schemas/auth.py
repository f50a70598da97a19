"""Staff login and session schemas"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel

from bookflow.models.user import UserRole


class Token(BaseModel):
    """Access/refresh pair handed to dashboard sessions"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until the access token lapses


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    """Staff profile as shown in the dashboard header"""
    id: UUID
    email: str
    full_name: Optional[str]
    role: UserRole
    tenant_id: Optional[UUID]
    is_active: bool
    last_login: Optional[datetime]

    class Config:
        from_attributes = True


class RoleCheckResponse(BaseModel):
    """Staff flag lookup backing the client role cache"""
    user_id: UUID
    role: UserRole
    is_staff: bool
    tenant_id: Optional[UUID]
