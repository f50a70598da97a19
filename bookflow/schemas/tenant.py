"""Restaurant configuration schemas and the widget bootstrap payload"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Literal
from uuid import UUID
from pydantic import BaseModel, Field

ApprovalMode = Literal["auto", "manual"]


class TenantCreate(BaseModel):
    name: str
    # Public widget URLs use the slug, so keep it URL safe
    slug: str = Field(min_length=2, max_length=100, pattern=r"^[a-z0-9][a-z0-9\-]*$")
    timezone: str = "America/New_York"
    currency: str = "USD"


class TenantUpdate(BaseModel):
    name: Optional[str] = None
    timezone: Optional[str] = None
    currency: Optional[str] = None
    is_active: Optional[bool] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None


class TenantResponse(BaseModel):
    id: UUID
    slug: str
    name: str
    timezone: str
    currency: str
    is_active: bool
    primary_color: Optional[str]
    secondary_color: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RestaurantSettingsUpdate(BaseModel):
    """
    Partial update of the operating rules.

    Slot length, duration and buffer feed the availability arithmetic;
    pacing_cap limits covers starting in one slot (0 disables the cap).
    """
    hours_json: Optional[Dict[str, Any]] = None
    approval_mode: Optional[ApprovalMode] = None
    max_party_size: Optional[int] = Field(default=None, ge=1)
    reservation_slot_minutes: Optional[int] = Field(default=None, ge=5, le=240)
    default_duration_minutes: Optional[int] = Field(default=None, ge=15)
    buffer_minutes: Optional[int] = Field(default=None, ge=0)
    pacing_cap: Optional[int] = Field(default=None, ge=0)
    average_cover_cents: Optional[int] = Field(default=None, ge=0)
    policies_json: Optional[Dict[str, Any]] = None
    escalation_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class RestaurantSettingsResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    hours_json: Optional[Dict[str, Any]]
    approval_mode: ApprovalMode
    max_party_size: int
    reservation_slot_minutes: int
    default_duration_minutes: int
    buffer_minutes: int
    pacing_cap: int
    average_cover_cents: int
    policies_json: Optional[Dict[str, Any]]
    escalation_number: Optional[str]
    address: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    updated_at: datetime

    class Config:
        from_attributes = True


class DepositPolicyUpdate(BaseModel):
    enabled: Optional[bool] = None
    default_amount: Optional[Decimal] = Field(default=None, ge=0)
    large_party_threshold: Optional[int] = Field(default=None, ge=1)
    large_party_amount: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = None
    show_policy_label: Optional[bool] = None


class DepositPolicyResponse(BaseModel):
    """Stored deposit rules; amounts are in major currency units"""
    tenant_id: UUID
    enabled: bool
    default_amount: Decimal
    large_party_threshold: int
    large_party_amount: Optional[Decimal]
    description: Optional[str]
    show_policy_label: bool

    class Config:
        from_attributes = True


class TableCreate(BaseModel):
    name: str
    capacity: int = Field(ge=1)
    active: bool = True


class TableResponse(TableCreate):
    id: UUID
    tenant_id: UUID

    class Config:
        from_attributes = True


class HolidayCreate(BaseModel):
    holiday_date: date
    name: Optional[str] = None


class HolidayResponse(HolidayCreate):
    id: UUID
    tenant_id: UUID

    class Config:
        from_attributes = True


class TenantBranding(BaseModel):
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None


class TenantFeatures(BaseModel):
    deposits_enabled: bool = False
    approval_mode: ApprovalMode = "auto"
    max_party_size: int = 20


class TenantInfo(BaseModel):
    """Everything the booking widget needs before the first availability call"""
    tenant_id: UUID
    slug: str
    name: str
    timezone: str
    currency: str
    business_hours: Optional[Dict[str, Any]] = None
    branding: TenantBranding
    features: TenantFeatures
    # Upcoming closures only
    holidays: List[date] = []
