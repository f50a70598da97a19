"""Pydantic schemas for request/response validation"""

from bookflow.schemas.auth import (
    Token,
    RefreshRequest,
    UserResponse,
    RoleCheckResponse,
)
from bookflow.schemas.tenant import (
    TenantCreate,
    TenantUpdate,
    TenantResponse,
    RestaurantSettingsUpdate,
    RestaurantSettingsResponse,
    DepositPolicyUpdate,
    DepositPolicyResponse,
    TableCreate,
    TableResponse,
    HolidayCreate,
    HolidayResponse,
    TenantInfo,
)
from bookflow.schemas.booking import (
    GuestDetails,
    DepositProof,
    EffectiveDepositPolicy,
    AvailabilityRequest,
    AvailabilityResponse,
    TimeSlot,
    HoldRequest,
    HoldResponse,
    ConfirmRequest,
    ReservationSummary,
    ReservationResponse,
    ReservationReadBack,
    BookingStatusUpdate,
    BookingApproval,
    BookingResponse,
    BookingListResponse,
)
from bookflow.schemas.payment import (
    DepositIntentCreate,
    DepositIntentResponse,
    WebhookAck,
)

__all__ = [
    "Token",
    "RefreshRequest",
    "UserResponse",
    "RoleCheckResponse",
    "TenantCreate",
    "TenantUpdate",
    "TenantResponse",
    "RestaurantSettingsUpdate",
    "RestaurantSettingsResponse",
    "DepositPolicyUpdate",
    "DepositPolicyResponse",
    "TableCreate",
    "TableResponse",
    "HolidayCreate",
    "HolidayResponse",
    "TenantInfo",
    "GuestDetails",
    "DepositProof",
    "EffectiveDepositPolicy",
    "AvailabilityRequest",
    "AvailabilityResponse",
    "TimeSlot",
    "HoldRequest",
    "HoldResponse",
    "ConfirmRequest",
    "ReservationSummary",
    "ReservationResponse",
    "ReservationReadBack",
    "BookingStatusUpdate",
    "BookingApproval",
    "BookingResponse",
    "BookingListResponse",
    "DepositIntentCreate",
    "DepositIntentResponse",
    "WebhookAck",
]
