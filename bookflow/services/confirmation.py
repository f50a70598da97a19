"""
Hold to booking conversion.

The booking insert, the hold delete, the audit row and the idempotency record
share one transaction. A booking is unique per hold, so a retry whose
idempotency record is missing still resolves to the original booking.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from bookflow.booking.codes import confirmation_number
from bookflow.booking.hours import as_utc_naive, to_local
from bookflow.config import settings
from bookflow.database import utcnow
from bookflow.errors import (
    DepositNotPaidError,
    DepositRequiredError,
    HoldExpiredError,
    HoldNotFoundError,
    PaymentIntentError,
)
from bookflow.models.booking import Booking, BookingHold, BookingStatus
from bookflow.models.tenant import Tenant, RestaurantTable
from bookflow.payments.deposits import effective_deposit_policy
from bookflow.payments.gateways import PaymentGateway
from bookflow.schemas.booking import (
    ConfirmRequest,
    EffectiveDepositPolicy,
    ReservationResponse,
    ReservationSummary,
)
from bookflow.services import idempotency
from bookflow.services.availability import (
    BookingRules,
    get_tenant,
    load_occupants,
    load_tables,
    pick_table,
    rules_for,
)
from bookflow.services.lifecycle import record_audit
from bookflow.services.notifications import notify_new_booking

logger = structlog.get_logger()


def confirm_fingerprint(request: ConfirmRequest) -> str:
    return idempotency.request_fingerprint({
        "hold_id": str(request.hold_id),
        "guest_details": request.guest_details.model_dump(mode="json"),
        "deposit": request.deposit.model_dump(mode="json") if request.deposit else None,
    })


async def get_table(db: AsyncSession, table_id: Optional[UUID]) -> Optional[RestaurantTable]:
    if table_id is None:
        return None
    result = await db.execute(select(RestaurantTable).where(RestaurantTable.id == table_id))
    return result.scalar_one_or_none()


def build_response(
    tenant: Tenant,
    booking: Booking,
    table: Optional[RestaurantTable],
    request_id: Optional[str],
) -> ReservationResponse:
    local = to_local(booking.booking_time, tenant.timezone)
    return ReservationResponse(
        reservation_id=booking.id,
        confirmation_number=booking.confirmation_code or confirmation_number(booking.id, booking.status),
        status=booking.status,
        summary=ReservationSummary(
            date=local.date().isoformat(),
            time=local.strftime("%H:%M"),
            party_size=booking.party_size,
            table_info=table.name if table else None,
            deposit_required=bool(booking.deposit_required),
            deposit_amount=(booking.deposit_amount_cents or 0) / 100,
        ),
        request_id=request_id,
    )


async def find_booking_for_hold(db: AsyncSession, tenant_id: UUID, hold_id: UUID) -> Optional[Booking]:
    result = await db.execute(
        select(Booking).where(Booking.tenant_id == tenant_id, Booking.hold_id == hold_id)
    )
    return result.scalar_one_or_none()


def same_request(booking: Booking, request: ConfirmRequest) -> bool:
    """Whether a confirmation retry carries the guest and deposit the booking was made with"""
    guest = request.guest_details
    if (booking.guest_email or "").lower() != guest.email.lower():
        return False
    if booking.guest_first_name != guest.first_name or booking.guest_last_name != guest.last_name:
        return False
    if booking.payment_intent_id:
        proof = request.deposit.payment_intent_id if request.deposit else None
        return booking.payment_intent_id in (proof, guest.payment_intent_id)
    return True


async def resolve_existing(db: AsyncSession, tenant: Tenant, request: ConfirmRequest, request_id: Optional[str]):
    """Response for a retry whose hold was already converted, or None"""
    existing = await find_booking_for_hold(db, tenant.id, request.hold_id)
    if existing is None:
        return None
    if not same_request(existing, request):
        logger.warning(
            "Confirmation retry does not match existing booking",
            tenant_id=str(tenant.id),
            hold_id=str(request.hold_id),
        )
        raise HoldNotFoundError(details={"hold_id": str(request.hold_id)})
    logger.info("Confirmation resolved from existing booking", reservation_id=str(existing.id))
    return build_response(tenant, existing, await get_table(db, existing.table_id), request_id)


async def verify_deposit(
    db: AsyncSession,
    tenant: Tenant,
    request: ConfirmRequest,
    policy: EffectiveDepositPolicy,
    gateway: PaymentGateway,
) -> Optional[str]:
    """
    Check the deposit proof against the processor.

    The intent must belong to the confirming tenant and be charged in its
    currency. Returns the payment intent id backing the deposit, or None when
    no deposit is required.
    """
    if not policy.required:
        return None

    deposit = request.deposit
    intent_id = None
    if deposit:
        intent_id = deposit.payment_intent_id or request.guest_details.payment_intent_id
    if not deposit or not deposit.paid or not intent_id:
        raise DepositRequiredError(details={"amount_cents": policy.amount_cents})

    try:
        intent = await gateway.retrieve_intent(intent_id)
    except PaymentIntentError:
        raise DepositNotPaidError(details={"payment_intent_id": intent_id})

    currency = (tenant.currency or settings.default_currency).lower()
    if intent.metadata.get("tenant_id") != str(tenant.id) or intent.currency.lower() != currency:
        logger.warning(
            "Deposit intent does not belong to tenant",
            tenant_id=str(tenant.id),
            payment_intent_id=intent_id,
            intent_tenant_id=intent.metadata.get("tenant_id"),
            intent_currency=intent.currency,
        )
        raise DepositNotPaidError(
            "This deposit was not paid to this restaurant",
            details={"payment_intent_id": intent_id},
        )

    if not intent.succeeded or intent.amount < policy.amount_cents:
        raise DepositNotPaidError(
            details={
                "payment_intent_id": intent_id,
                "status": intent.status,
                "amount_cents": intent.amount,
                "required_cents": policy.amount_cents,
            }
        )

    result = await db.execute(select(Booking.id).where(Booking.payment_intent_id == intent_id))
    if result.first() is not None:
        raise DepositNotPaidError(
            "This deposit has already been applied to another booking",
            details={"payment_intent_id": intent_id},
        )

    return intent_id


async def assign_table(
    db: AsyncSession,
    tenant: Tenant,
    rules: BookingRules,
    hold: BookingHold,
    now: datetime,
) -> Optional[RestaurantTable]:
    """Smallest free table for a hold that was taken without one"""
    tables = await load_tables(db, tenant.id)
    occupants = await load_occupants(
        db, tenant.id,
        hold.booking_time - timedelta(days=1), hold.booking_time + timedelta(days=1),
        now, rules, exclude_hold_id=hold.id,
    )
    return pick_table(hold.booking_time, hold.party_size, rules, tables, occupants)


async def confirm_booking(
    db: AsyncSession,
    tenant_id: UUID,
    request: ConfirmRequest,
    idempotency_key: Optional[str],
    gateway: PaymentGateway,
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
    notify: bool = True,
) -> ReservationResponse:
    """Turn a live hold into a pending or confirmed booking"""
    key = idempotency.require_key(idempotency_key)
    now = as_utc_naive(now) if now else utcnow()
    request_hash = confirm_fingerprint(request)

    tenant = await get_tenant(db, tenant_id, lock=True)

    record = await idempotency.lookup(db, tenant.id, idempotency.SCOPE_CONFIRM, key, request_hash)
    if record:
        logger.info(
            "Confirmation replayed",
            tenant_id=str(tenant_id),
            reservation_id=record.response_json.get("reservation_id"),
        )
        return ReservationResponse(**record.response_json)

    result = await db.execute(
        select(BookingHold).where(BookingHold.id == request.hold_id, BookingHold.tenant_id == tenant.id)
    )
    hold = result.scalar_one_or_none()

    if hold is None:
        response = await resolve_existing(db, tenant, request, request_id)
        if response:
            return response
        raise HoldNotFoundError(details={"hold_id": str(request.hold_id)})

    if hold.is_expired(now):
        raise HoldExpiredError(details={"hold_id": str(hold.id)})

    rules = rules_for(tenant)
    policy = effective_deposit_policy(tenant.deposit_policy, hold.party_size)
    payment_intent_id = await verify_deposit(db, tenant, request, policy, gateway)

    status = BookingStatus.PENDING if rules.requires_approval else BookingStatus.CONFIRMED

    table = await get_table(db, hold.table_id)
    if table is None and status == BookingStatus.CONFIRMED:
        table = await assign_table(db, tenant, rules, hold, now)

    guest = request.guest_details
    booking_id = uuid4()
    booking = Booking(
        id=booking_id,
        tenant_id=tenant.id,
        hold_id=hold.id,
        table_id=table.id if table else None,
        guest_name=guest.full_name,
        guest_first_name=guest.first_name,
        guest_last_name=guest.last_name,
        guest_email=guest.email,
        guest_phone=guest.phone,
        party_size=hold.party_size,
        booking_time=hold.booking_time,
        duration_minutes=hold.duration_minutes or rules.duration_minutes,
        special_requests=guest.special_requests,
        source="website",
        status=status,
        confirmation_code=confirmation_number(booking_id, status),
        deposit_required=policy.required,
        deposit_amount_cents=policy.amount_cents if policy.required else 0,
        deposit_paid=payment_intent_id is not None,
        payment_intent_id=payment_intent_id,
    )
    db.add(booking)
    await db.delete(hold)
    record_audit(
        db,
        tenant_id=tenant.id,
        action="booking.created",
        booking=booking,
        before=None,
        after=status,
        actor_type="guest",
        actor_name=guest.full_name,
        request_id=request_id,
    )

    response = build_response(tenant, booking, table, request_id)
    idempotency.remember(
        db, tenant.id, idempotency.SCOPE_CONFIRM, key, request_hash,
        response.model_dump(mode="json"), request_id=request_id,
    )

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        record = await idempotency.lookup(db, tenant_id, idempotency.SCOPE_CONFIRM, key, request_hash)
        if record:
            return ReservationResponse(**record.response_json)
        tenant = await get_tenant(db, tenant_id)
        response = await resolve_existing(db, tenant, request, request_id)
        if response:
            return response
        raise

    logger.info(
        "Booking created",
        tenant_id=str(tenant_id),
        reservation_id=str(booking.id),
        hold_id=str(request.hold_id),
        status=status,
        deposit_paid=booking.deposit_paid,
        request_id=request_id,
    )

    if notify:
        await notify_new_booking(tenant, booking, db)

    return response


async def read_back(db: AsyncSession, tenant_id: UUID, reservation_id: UUID) -> Optional[Booking]:
    """Minimal booking lookup for the verification step"""
    result = await db.execute(
        select(Booking).where(Booking.id == reservation_id, Booking.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()
