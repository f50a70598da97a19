"""Staff-driven booking status transitions"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.booking.codes import confirmation_number
from bookflow.booking.hours import as_utc_naive
from bookflow.database import utcnow
from bookflow.errors import InvalidTransitionError, ReservationNotFoundError
from bookflow.models.audit import AuditLog
from bookflow.models.booking import Booking, BookingStatus
from bookflow.models.tenant import Tenant
from bookflow.models.user import User
from bookflow.services.notifications import notify_guest

logger = structlog.get_logger()


def record_audit(
    db: AsyncSession,
    tenant_id: UUID,
    action: str,
    booking: Booking,
    before: Optional[str],
    after: Optional[str],
    actor: Optional[User] = None,
    actor_type: Optional[str] = None,
    actor_name: Optional[str] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> AuditLog:
    """Stage an audit row for a booking status change"""
    data = {"before": {"status": before}, "after": {"status": after}}
    if reason:
        data["reason"] = reason

    entry = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor.id if actor else None,
        actor_type=actor_type or ("user" if actor else "system"),
        actor_name=actor_name or ((actor.full_name or actor.email) if actor else None),
        action=action,
        resource_type="booking",
        resource_id=booking.id,
        data_json=data,
        request_id=request_id,
    )
    db.add(entry)
    return entry


def check_transition(current: str, target: str) -> None:
    if target not in BookingStatus.TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot move booking from {current} to {target}",
            details={"from": current, "to": target},
        )


async def get_booking(db: AsyncSession, tenant_id: UUID, booking_id: UUID) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id, Booking.tenant_id == tenant_id)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise ReservationNotFoundError()
    return booking


async def change_status(
    db: AsyncSession,
    booking: Booking,
    target: str,
    actor: Optional[User] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
    action: str = "booking.status_changed",
) -> Booking:
    """Apply one legal transition and audit it"""
    before = booking.status
    check_transition(before, target)

    booking.status = target
    if target == BookingStatus.CONFIRMED:
        booking.confirmation_code = confirmation_number(booking.id, target)

    record_audit(
        db,
        tenant_id=booking.tenant_id,
        action=action,
        booking=booking,
        before=before,
        after=target,
        actor=actor,
        reason=reason,
        request_id=request_id,
    )
    await db.commit()
    await db.refresh(booking)

    logger.info(
        "Booking status changed",
        tenant_id=str(booking.tenant_id),
        reservation_id=str(booking.id),
        previous_status=before,
        status=target,
        request_id=request_id,
    )
    return booking


async def apply_approval(
    db: AsyncSession,
    tenant: Tenant,
    booking: Booking,
    action: str,
    actor: Optional[User] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Booking:
    """Approve (pending -> confirmed) or decline (pending -> cancelled) a request"""
    if booking.status != BookingStatus.PENDING:
        raise InvalidTransitionError(
            "Only pending requests can be approved or declined",
            details={"from": booking.status, "action": action},
        )

    target = BookingStatus.CONFIRMED if action == "approve" else BookingStatus.CANCELLED
    booking = await change_status(
        db, booking, target,
        actor=actor, reason=reason, request_id=request_id,
        action=f"booking.{'approved' if action == 'approve' else 'declined'}",
    )

    try:
        await notify_guest(tenant, booking, db)
    except Exception as e:
        logger.error("Failed to notify guest of decision", reservation_id=str(booking.id), error=str(e))

    return booking


async def list_bookings(
    db: AsyncSession,
    tenant_id: UUID,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[Booking], int]:
    """Bookings for a tenant ordered by time; dates are UTC calendar days"""
    filters = [Booking.tenant_id == tenant_id]
    if status:
        filters.append(Booking.status == status)
    if date_from:
        filters.append(Booking.booking_time >= datetime.combine(date_from, time.min))
    if date_to:
        filters.append(Booking.booking_time < datetime.combine(date_to + timedelta(days=1), time.min))

    total = await db.scalar(select(func.count()).select_from(Booking).where(*filters))

    result = await db.execute(
        select(Booking)
        .where(*filters)
        .order_by(Booking.booking_time)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total or 0


async def due_reminders(
    db: AsyncSession,
    now: Optional[datetime] = None,
    lead_from: timedelta = timedelta(hours=2),
    lead_to: timedelta = timedelta(hours=4),
) -> List[Booking]:
    """Confirmed bookings starting lead_from..lead_to from now that have not had a reminder"""
    now = as_utc_naive(now) if now else utcnow()
    result = await db.execute(
        select(Booking).where(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.reminder_sent.is_(None),
            Booking.booking_time.between(now + lead_from, now + lead_to),
        )
    )
    return list(result.scalars().all())
