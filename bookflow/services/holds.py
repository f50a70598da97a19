"""Time-boxed holds on a slot ahead of confirmation"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.booking.hours import as_utc, as_utc_naive, is_within_hours, to_local
from bookflow.config import settings
from bookflow.database import utcnow
from bookflow.errors import InvalidSlotError, SlotUnavailableError
from bookflow.models.booking import BookingHold
from bookflow.schemas.booking import HoldRequest, HoldResponse
from bookflow.services import idempotency
from bookflow.services.availability import (
    check_party_size,
    get_holiday,
    get_tenant,
    load_occupants,
    load_tables,
    pick_table,
    rules_for,
)

logger = structlog.get_logger()


def hold_fingerprint(request: HoldRequest) -> str:
    return idempotency.request_fingerprint({
        "party_size": request.party_size,
        "slot_time": as_utc(request.slot.time).isoformat(),
        "table_id": str(request.table_id) if request.table_id else None,
    })


async def create_hold(
    db: AsyncSession,
    tenant_id: UUID,
    request: HoldRequest,
    idempotency_key: Optional[str],
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> HoldResponse:
    """
    Reserve capacity for a slot for hold_ttl_minutes.

    Replaying the same key and body returns the stored hold.
    """
    key = idempotency.require_key(idempotency_key)
    now = as_utc_naive(now) if now else utcnow()
    request_hash = hold_fingerprint(request)

    tenant = await get_tenant(db, tenant_id, lock=True)

    record = await idempotency.lookup(db, tenant.id, idempotency.SCOPE_HOLD, key, request_hash)
    if record:
        logger.info("Hold replayed", tenant_id=str(tenant_id), hold_id=record.response_json.get("hold_id"))
        return HoldResponse(**record.response_json)

    rules = rules_for(tenant)
    check_party_size(rules, request.party_size)

    slot_time = as_utc_naive(request.slot.time)
    if slot_time <= now:
        raise InvalidSlotError("The selected time has already passed")
    local_date = to_local(slot_time, rules.timezone).date()
    if await get_holiday(db, tenant.id, local_date):
        raise InvalidSlotError("The restaurant is closed on the selected date")
    if not is_within_hours(slot_time, rules.hours, rules.timezone):
        raise InvalidSlotError()

    tables = await load_tables(db, tenant.id)
    occupants = await load_occupants(
        db, tenant.id, slot_time - timedelta(days=1), slot_time + timedelta(days=1), now, rules
    )
    table = pick_table(slot_time, request.party_size, rules, tables, occupants, request.table_id)
    if table is None:
        logger.info(
            "Slot unavailable for hold",
            tenant_id=str(tenant_id),
            slot_time=slot_time.isoformat(),
            party_size=request.party_size,
        )
        raise SlotUnavailableError(details={"slot_time": as_utc(slot_time).isoformat()})

    hold = BookingHold(
        tenant_id=tenant.id,
        table_id=table.id,
        party_size=request.party_size,
        booking_time=slot_time,
        duration_minutes=rules.duration_minutes,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.hold_ttl_minutes),
    )
    db.add(hold)
    await db.flush()

    response = HoldResponse(
        hold_id=hold.id,
        expires_at=as_utc(hold.expires_at),
        table_identifiers=[table.name],
        request_id=request_id,
    )
    idempotency.remember(
        db, tenant.id, idempotency.SCOPE_HOLD, key, request_hash,
        response.model_dump(mode="json"), request_id=request_id,
    )

    try:
        await db.commit()
    except IntegrityError:
        # A concurrent request stored the same key first
        await db.rollback()
        record = await idempotency.lookup(db, tenant_id, idempotency.SCOPE_HOLD, key, request_hash)
        if record is None:
            raise
        return HoldResponse(**record.response_json)

    logger.info(
        "Hold created",
        tenant_id=str(tenant_id),
        hold_id=str(hold.id),
        table=table.name,
        expires_at=hold.expires_at.isoformat(),
        request_id=request_id,
    )
    return response


async def expire_holds(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Delete holds past their expiry; returns the number removed"""
    now = as_utc_naive(now) if now else utcnow()
    result = await db.execute(delete(BookingHold).where(BookingHold.expires_at <= now))
    await db.commit()
    removed = result.rowcount or 0
    if removed:
        logger.info("Expired holds removed", count=removed)
    return removed
