"""
Availability search and table capacity.

A slot is bookable when at least one active table that seats the party is
free for the whole turn, i.e. the booking duration padded by the tenant's
buffer on both sides. Active bookings and unexpired holds occupy tables;
the ones without an assigned table take the smallest free table that fits
them. A non-zero pacing cap limits how many parties may start in one slot.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from bookflow.booking.hours import (
    as_utc,
    as_utc_naive,
    clamp_slots,
    slot_times_for_date,
    to_local,
    window_for_date,
)
from bookflow.config import settings
from bookflow.database import utcnow
from bookflow.errors import InvalidPartySizeError, TenantNotFoundError
from bookflow.models.booking import Booking, BookingHold, BookingStatus
from bookflow.models.tenant import Tenant, RestaurantTable, Holiday
from bookflow.payments.deposits import effective_deposit_policy
from bookflow.schemas.booking import AvailabilityResponse, TimeSlot

logger = structlog.get_logger()

REASON_HOLIDAY = "HOLIDAY"
REASON_CLOSED = "CLOSED_OR_NO_HOURS"

OPTIMAL_HOURS = (18, 19)


@dataclass
class BookingRules:
    """Reservation settings with defaults applied"""
    hours: Optional[Dict[str, Any]]
    timezone: str
    approval_mode: str = "auto"
    max_party_size: int = 20
    slot_minutes: int = 30
    duration_minutes: int = 120
    buffer_minutes: int = 10
    pacing_cap: int = 0
    average_cover_cents: int = 4500

    @property
    def requires_approval(self) -> bool:
        return self.approval_mode == "manual"


@dataclass
class Occupant:
    """A booking or hold occupying capacity"""
    start: datetime
    end: datetime
    party_size: int
    table_id: Optional[UUID] = None


def rules_for(tenant: Tenant) -> BookingRules:
    s = tenant.settings
    tz = tenant.timezone or "UTC"
    if s is None:
        return BookingRules(hours=None, timezone=tz, duration_minutes=settings.default_duration_minutes)

    def pick(value, default):
        return default if value is None else value

    return BookingRules(
        hours=s.hours_json,
        timezone=tz,
        approval_mode=pick(s.approval_mode, "auto"),
        max_party_size=pick(s.max_party_size, 20),
        slot_minutes=pick(s.reservation_slot_minutes, 30),
        duration_minutes=pick(s.default_duration_minutes, settings.default_duration_minutes),
        buffer_minutes=pick(s.buffer_minutes, 10),
        pacing_cap=pick(s.pacing_cap, 0),
        average_cover_cents=pick(s.average_cover_cents, 4500),
    )


async def get_tenant(db: AsyncSession, tenant_id: UUID, lock: bool = False) -> Tenant:
    """Active tenant with settings and deposit policy loaded"""
    query = (
        select(Tenant)
        .where(Tenant.id == tenant_id, Tenant.is_active == True)
        .options(selectinload(Tenant.settings), selectinload(Tenant.deposit_policy))
    )
    if lock:
        # Serialises capacity checks per tenant on databases that support it
        query = query.with_for_update(of=Tenant)

    result = await db.execute(query)
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise TenantNotFoundError()
    return tenant


def check_party_size(rules: BookingRules, party_size: int) -> None:
    if party_size < 1 or party_size > rules.max_party_size:
        raise InvalidPartySizeError(
            f"Party size must be between 1 and {rules.max_party_size}",
            details={"party_size": party_size, "max_party_size": rules.max_party_size},
        )


async def get_holiday(db: AsyncSession, tenant_id: UUID, service_date: date) -> Optional[Holiday]:
    result = await db.execute(
        select(Holiday).where(Holiday.tenant_id == tenant_id, Holiday.holiday_date == service_date)
    )
    return result.scalars().first()


async def load_tables(db: AsyncSession, tenant_id: UUID) -> List[RestaurantTable]:
    result = await db.execute(
        select(RestaurantTable)
        .where(RestaurantTable.tenant_id == tenant_id, RestaurantTable.active == True)
        .order_by(RestaurantTable.capacity, RestaurantTable.name)
    )
    return list(result.scalars().all())


async def load_occupants(
    db: AsyncSession,
    tenant_id: UUID,
    start: datetime,
    end: datetime,
    now: datetime,
    rules: BookingRules,
    exclude_hold_id: Optional[UUID] = None,
    exclude_booking_id: Optional[UUID] = None,
) -> List[Occupant]:
    """Active bookings and live holds starting between start and end (naive UTC)"""
    occupants = []

    result = await db.execute(
        select(Booking).where(
            Booking.tenant_id == tenant_id,
            Booking.status.in_(BookingStatus.ACTIVE),
            Booking.booking_time >= start,
            Booking.booking_time < end,
        )
    )
    for booking in result.scalars().all():
        if exclude_booking_id and booking.id == exclude_booking_id:
            continue
        duration = booking.duration_minutes or rules.duration_minutes
        occupants.append(Occupant(
            start=booking.booking_time,
            end=booking.booking_time + timedelta(minutes=duration),
            party_size=booking.party_size,
            table_id=booking.table_id,
        ))

    result = await db.execute(
        select(BookingHold).where(
            BookingHold.tenant_id == tenant_id,
            BookingHold.expires_at > now,
            BookingHold.booking_time >= start,
            BookingHold.booking_time < end,
        )
    )
    for hold in result.scalars().all():
        if exclude_hold_id and hold.id == exclude_hold_id:
            continue
        duration = hold.duration_minutes or rules.duration_minutes
        occupants.append(Occupant(
            start=hold.booking_time,
            end=hold.booking_time + timedelta(minutes=duration),
            party_size=hold.party_size,
            table_id=hold.table_id,
        ))

    return occupants


def occupancy_range(slot_times: Sequence[datetime]) -> Tuple[datetime, datetime]:
    """Query range wide enough to catch every booking overlapping the slots"""
    first = as_utc_naive(min(slot_times))
    last = as_utc_naive(max(slot_times))
    return first - timedelta(days=1), last + timedelta(days=1)


def free_tables(
    slot_start: datetime,
    rules: BookingRules,
    tables: Sequence[RestaurantTable],
    occupants: Sequence[Occupant],
) -> List[RestaurantTable]:
    """Tables free for a full turn starting at slot_start, smallest first"""
    slot_start = as_utc_naive(slot_start)
    buffer = timedelta(minutes=rules.buffer_minutes)
    window_start = slot_start - buffer
    window_end = slot_start + timedelta(minutes=rules.duration_minutes) + buffer

    overlapping = [o for o in occupants if o.start < window_end and o.end > window_start]

    blocked = {o.table_id for o in overlapping if o.table_id is not None}
    free = [t for t in tables if t.id not in blocked]

    # Unassigned parties each take the smallest free table that seats them
    for occupant in sorted(
        (o for o in overlapping if o.table_id is None),
        key=lambda o: o.party_size,
        reverse=True,
    ):
        for table in free:
            if table.capacity >= occupant.party_size:
                free.remove(table)
                break

    return sorted(free, key=lambda t: (t.capacity, t.name))


def available_count(
    slot_start: datetime,
    party_size: int,
    rules: BookingRules,
    tables: Sequence[RestaurantTable],
    occupants: Sequence[Occupant],
) -> int:
    """Number of tables a party could still book at slot_start"""
    fitting = [t for t in free_tables(slot_start, rules, tables, occupants) if t.capacity >= party_size]
    count = len(fitting)

    if rules.pacing_cap and rules.pacing_cap > 0:
        slot_start = as_utc_naive(slot_start)
        starting = sum(1 for o in occupants if o.start == slot_start)
        count = min(count, max(0, rules.pacing_cap - starting))

    return count


def pick_table(
    slot_start: datetime,
    party_size: int,
    rules: BookingRules,
    tables: Sequence[RestaurantTable],
    occupants: Sequence[Occupant],
    table_id: Optional[UUID] = None,
) -> Optional[RestaurantTable]:
    """Smallest free table that seats the party, or the requested one when free"""
    if available_count(slot_start, party_size, rules, tables, occupants) < 1:
        return None

    for table in free_tables(slot_start, rules, tables, occupants):
        if table.capacity < party_size:
            continue
        if table_id is None or table.id == table_id:
            return table
    return None


def is_optimal(slot_time: datetime, tz_name: str) -> bool:
    return to_local(slot_time, tz_name).hour in OPTIMAL_HOURS


async def slots_for_date(
    db: AsyncSession,
    tenant: Tenant,
    rules: BookingRules,
    tables: Sequence[RestaurantTable],
    party_size: int,
    service_date: date,
    now: datetime,
) -> Tuple[List[TimeSlot], Optional[str]]:
    """Bookable slots for one date and the reason when the day is closed"""
    if await get_holiday(db, tenant.id, service_date):
        return [], REASON_HOLIDAY

    window = window_for_date(rules.hours, service_date)
    if window is None:
        return [], REASON_CLOSED

    times = [
        t for t in slot_times_for_date(service_date, window, rules.slot_minutes, rules.timezone)
        if as_utc_naive(t) > now
    ]
    if not times:
        return [], None

    start, end = occupancy_range(times)
    occupants = await load_occupants(db, tenant.id, start, end, now, rules)

    slots = []
    for slot_time in times:
        count = available_count(slot_time, party_size, rules, tables, occupants)
        if count > 0:
            slots.append(TimeSlot(
                time=as_utc(slot_time),
                available_tables=count,
                optimal=is_optimal(slot_time, rules.timezone),
                revenue_projection_cents=party_size * rules.average_cover_cents,
            ))
    return slots, None


async def search_availability(
    db: AsyncSession,
    tenant_id: UUID,
    party_size: int,
    service_date: date,
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AvailabilityResponse:
    """Slots for a party on a date, with alternatives when the date is full or closed"""
    now = as_utc_naive(now) if now else utcnow()
    tenant = await get_tenant(db, tenant_id)
    rules = rules_for(tenant)
    check_party_size(rules, party_size)

    tables = await load_tables(db, tenant.id)
    slots, reason = await slots_for_date(db, tenant, rules, tables, party_size, service_date, now)

    alternatives: List[TimeSlot] = []
    if not slots:
        for offset in range(1, settings.alternatives_search_days + 1):
            candidate, _ = await slots_for_date(
                db, tenant, rules, tables, party_size, service_date + timedelta(days=offset), now
            )
            if candidate:
                alternatives = candidate[:settings.max_alternatives]
                break

    slots = clamp_slots(slots, rules.hours, rules.timezone)
    alternatives = clamp_slots(alternatives, rules.hours, rules.timezone)

    logger.info(
        "Availability searched",
        tenant_id=str(tenant_id),
        party_size=party_size,
        service_date=service_date.isoformat(),
        slots=len(slots),
        alternatives=len(alternatives),
        reason=reason,
        request_id=request_id,
    )

    return AvailabilityResponse(
        slots=slots,
        alternatives=alternatives,
        deposit_policy=effective_deposit_policy(tenant.deposit_policy, party_size),
        reason=reason,
        request_id=request_id,
    )
