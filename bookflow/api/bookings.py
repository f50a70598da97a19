"""Staff booking management endpoints"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bookflow.api.auth import require_tenant_role
from bookflow.api.public import get_request_id
from bookflow.database import get_db
from bookflow.models.user import User, UserRole
from bookflow.schemas.booking import (
    BookingApproval,
    BookingListResponse,
    BookingResponse,
    BookingStatusUpdate,
)
from bookflow.services.availability import get_tenant
from bookflow.services.lifecycle import apply_approval, change_status, get_booking, list_bookings

router = APIRouter()


@router.get("", response_model=BookingListResponse)
async def list_tenant_bookings(
    tenant_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    current_user: User = Depends(require_tenant_role(UserRole.STAFF_VIEWER)),
    db: AsyncSession = Depends(get_db),
):
    """List bookings for a tenant with pagination"""
    items, total = await list_bookings(
        db, tenant_id,
        status=status, date_from=date_from, date_to=date_to,
        page=page, page_size=page_size,
    )
    return BookingListResponse(items=items, total=total, page=page, page_size=page_size)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_tenant_booking(
    tenant_id: UUID,
    booking_id: UUID,
    current_user: User = Depends(require_tenant_role(UserRole.STAFF_VIEWER)),
    db: AsyncSession = Depends(get_db),
):
    """Get booking details"""
    return await get_booking(db, tenant_id, booking_id)


@router.post("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    tenant_id: UUID,
    booking_id: UUID,
    data: BookingStatusUpdate,
    request_id: Optional[str] = Depends(get_request_id),
    current_user: User = Depends(require_tenant_role(UserRole.HOST)),
    db: AsyncSession = Depends(get_db),
):
    """Move a booking along its lifecycle (seat, complete, cancel, no-show)"""
    booking = await get_booking(db, tenant_id, booking_id)
    return await change_status(
        db, booking, data.status,
        actor=current_user, reason=data.reason, request_id=request_id,
    )


@router.post("/{booking_id}/approval", response_model=BookingResponse)
async def decide_booking(
    tenant_id: UUID,
    booking_id: UUID,
    data: BookingApproval,
    request_id: Optional[str] = Depends(get_request_id),
    current_user: User = Depends(require_tenant_role(UserRole.HOST)),
    db: AsyncSession = Depends(get_db),
):
    """Approve or decline a pending reservation request"""
    tenant = await get_tenant(db, tenant_id)
    booking = await get_booking(db, tenant_id, booking_id)
    return await apply_approval(
        db, tenant, booking, data.action,
        actor=current_user, reason=data.reason, request_id=request_id,
    )
