"""Public booking widget endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from bookflow.database import get_db, utcnow
from bookflow.errors import ReservationNotFoundError, TenantNotFoundError
from bookflow.models.tenant import Tenant, Holiday
from bookflow.payments.deposits import create_deposit_intent
from bookflow.payments.gateways import PaymentGateway, get_gateway
from bookflow.schemas.booking import (
    AvailabilityRequest,
    AvailabilityResponse,
    ConfirmRequest,
    HoldRequest,
    HoldResponse,
    ReservationReadBack,
    ReservationResponse,
)
from bookflow.schemas.payment import DepositIntentCreate, DepositIntentResponse
from bookflow.schemas.tenant import TenantBranding, TenantFeatures, TenantInfo
from bookflow.services.availability import search_availability
from bookflow.services.confirmation import confirm_booking, read_back
from bookflow.services.holds import create_hold

router = APIRouter()
logger = structlog.get_logger()


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


@router.get("/resolve/{slug_or_id}", response_model=TenantInfo)
async def resolve_tenant(
    slug_or_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Resolve a widget tenant by slug or id"""
    condition = Tenant.slug == slug_or_id
    try:
        condition = or_(condition, Tenant.id == UUID(slug_or_id))
    except ValueError:
        pass

    result = await db.execute(
        select(Tenant)
        .where(condition, Tenant.is_active == True)
        .options(selectinload(Tenant.settings), selectinload(Tenant.deposit_policy))
    )
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise TenantNotFoundError()

    result = await db.execute(
        select(Holiday.holiday_date)
        .where(Holiday.tenant_id == tenant.id, Holiday.holiday_date >= utcnow().date())
        .order_by(Holiday.holiday_date)
    )
    holidays = list(result.scalars().all())

    settings_obj = tenant.settings
    policy = tenant.deposit_policy

    return TenantInfo(
        tenant_id=tenant.id,
        slug=tenant.slug,
        name=tenant.name,
        timezone=tenant.timezone,
        currency=tenant.currency,
        business_hours=settings_obj.hours_json if settings_obj else None,
        branding=TenantBranding(
            primary_color=tenant.primary_color,
            secondary_color=tenant.secondary_color,
        ),
        features=TenantFeatures(
            deposits_enabled=bool(policy and policy.enabled),
            approval_mode=(settings_obj.approval_mode if settings_obj else None) or "auto",
            max_party_size=(settings_obj.max_party_size if settings_obj else None) or 20,
        ),
        holidays=holidays,
    )


@router.post("/{tenant_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    tenant_id: UUID,
    data: AvailabilityRequest,
    request_id: Optional[str] = Depends(get_request_id),
    db: AsyncSession = Depends(get_db),
):
    """Bookable slots for a party on a date"""
    return await search_availability(
        db, tenant_id, data.party_size, data.service_date, request_id=request_id
    )


@router.post("/{tenant_id}/holds", response_model=HoldResponse)
async def place_hold(
    tenant_id: UUID,
    data: HoldRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    request_id: Optional[str] = Depends(get_request_id),
    db: AsyncSession = Depends(get_db),
):
    """Hold a slot while the guest completes their details"""
    return await create_hold(db, tenant_id, data, idempotency_key, request_id=request_id)


@router.post("/{tenant_id}/deposits/intents", response_model=DepositIntentResponse)
async def create_intent(
    tenant_id: UUID,
    data: DepositIntentCreate,
    request_id: Optional[str] = Depends(get_request_id),
    gateway: PaymentGateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_db),
):
    """Start a deposit payment"""
    return await create_deposit_intent(db, tenant_id, data, gateway, request_id=request_id)


@router.post("/{tenant_id}/reservations/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    tenant_id: UUID,
    data: ConfirmRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    request_id: Optional[str] = Depends(get_request_id),
    gateway: PaymentGateway = Depends(get_gateway),
    db: AsyncSession = Depends(get_db),
):
    """Convert a hold into a reservation"""
    return await confirm_booking(
        db, tenant_id, data, idempotency_key, gateway, request_id=request_id
    )


@router.get("/{tenant_id}/reservations/{reservation_id}", response_model=ReservationReadBack)
async def get_reservation(
    tenant_id: UUID,
    reservation_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Minimal read-back of a reservation"""
    booking = await read_back(db, tenant_id, reservation_id)
    if not booking:
        raise ReservationNotFoundError()
    return booking
