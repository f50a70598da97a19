"""Tests for the guest booking client and workflow"""

import asyncio
from datetime import timedelta
from uuid import uuid4

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from bookflow.api.auth import create_access_token
from bookflow.client import (
    BookingAPIClient,
    BookingWorkflow,
    RoleCache,
    render_confirmation,
    verify_reservation,
)
from bookflow.client.role_cache import CONFIDENCE_CACHED, CONFIDENCE_VERIFIED
from bookflow.client.workflow import GENERIC_ERROR_MESSAGE
from bookflow.errors import (
    BookingNetworkError,
    BookingTimeoutError,
    BookingValidationError,
    CardDeclinedError,
    DepositRequiredError,
    IdempotencyConflictError,
    InvalidPartySizeError,
    InvalidSlotError,
    PaymentUnavailableError,
    ServiceUnavailableError,
    SlotUnavailableError,
)
from bookflow.models.booking import Booking
from bookflow.models.idempotency import IdempotencyRecord
from bookflow.payments.gateways import MockGateway, get_gateway
from bookflow.schemas.booking import (
    AvailabilityResponse,
    ReservationReadBack,
    ReservationResponse,
    ReservationSummary,
    TimeSlot,
)
from bookflow.schemas.tenant import TenantBranding, TenantFeatures, TenantInfo

from conftest import GUEST, HOURS, TIMEZONE, place_hold, slot_at, upcoming


def workflow(http: AsyncClient, **kwargs) -> BookingWorkflow:
    return BookingWorkflow(BookingAPIClient(http_client=http), verification_delay=0, **kwargs)


def pick(slots, when):
    return next(s for s in slots if s.time == when)


async def approve_card(client_secret):
    return await get_gateway().confirm_card_payment(client_secret)


async def decline_card(client_secret):
    return await get_gateway().confirm_card_payment(client_secret, MockGateway.DECLINE_CARD)


@pytest.mark.asyncio
async def test_workflow_books_and_verifies(client: AsyncClient, test_db, test_tenant, next_tuesday):
    flow = workflow(client)

    tenant = await flow.start("auto-bistro")
    assert tenant.tenant_id == test_tenant.id

    slots = await flow.search(2, next_tuesday)
    assert len(slots) == 10

    reservation = await flow.book(pick(slots, slot_at(next_tuesday, "19:00")), **GUEST)
    assert reservation.status == "confirmed"

    result = await flow.verify()
    assert result.ok
    assert result.reservation.id == reservation.reservation_id

    view = render_confirmation(reservation, restaurant_name=tenant.name)
    assert view.title == "Booking Confirmed"
    assert view.heading == f"Confirmation #{reservation.confirmation_number}"
    assert "Party Size: 2 guests" in view.details

    # One key per attempt, recorded once per operation
    records = (await test_db.execute(
        select(IdempotencyRecord).where(IdempotencyRecord.idempotency_key == flow.state.idempotency_key)
    )).scalars().all()
    assert flow.state.idempotency_key.startswith("booking:")
    assert sorted(r.scope for r in records) == ["confirm", "hold"]
    assert flow.state.attempts == 1


@pytest.mark.asyncio
async def test_repeated_steps_replay(client: AsyncClient, test_db, test_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start(str(test_tenant.id))
    slots = await flow.search(2, next_tuesday)
    flow.select_slot(pick(slots, slot_at(next_tuesday, "18:00")))

    first = await flow.hold()
    second = await flow.hold()
    assert first.hold_id == second.hold_id

    flow.set_guest_details(**GUEST)
    reservation = await flow.confirm()
    await flow.verify()
    again = await flow.confirm()
    await flow.verify()

    assert again.reservation_id == reservation.reservation_id
    bookings = (await test_db.execute(select(Booking))).scalars().all()
    assert len(bookings) == 1


@pytest.mark.asyncio
async def test_closed_day_returns_alternatives(client: AsyncClient, test_tenant, next_monday):
    flow = workflow(client)
    await flow.start("auto-bistro")

    slots = await flow.search(2, next_monday)

    assert slots == []
    assert flow.state.reason == "CLOSED_OR_NO_HOURS"
    assert [s.time for s in flow.state.alternatives][0] == slot_at(next_monday + timedelta(days=1), "17:00")

    flow.select_slot(flow.state.alternatives[0])
    assert flow.state.selected_slot is flow.state.alternatives[0]


@pytest.mark.asyncio
async def test_manual_tenant_pending_copy(client: AsyncClient, manual_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("manual-trattoria")
    slots = await flow.search(4, next_tuesday)

    reservation = await flow.book(slots[0], **GUEST)
    view = render_confirmation(reservation)

    assert reservation.status == "pending"
    assert view.is_pending
    assert view.heading.startswith("Request #PEND")
    assert view.message.endswith("You will receive a text message once it is reviewed.")
    assert (await flow.verify()).ok


class StubClient:
    """Returns server slots that ignore the restaurant's Monday closure"""

    def __init__(self, slots):
        self.tenant_id = str(uuid4())
        self.slots = slots

    async def search_availability(self, party_size, service_date):
        return AvailabilityResponse(slots=self.slots)


def tenant_info(hours):
    return TenantInfo(
        tenant_id=uuid4(),
        slug="stub",
        name="Stub",
        timezone=TIMEZONE,
        currency="USD",
        business_hours=hours,
        branding=TenantBranding(),
        features=TenantFeatures(max_party_size=8),
    )


@pytest.mark.asyncio
async def test_server_slots_are_clamped_to_business_hours(next_monday):
    raw = [TimeSlot(time=slot_at(next_monday, hhmm), available_tables=2) for hhmm in ("17:00", "19:00")]
    flow = BookingWorkflow(StubClient(raw))

    flow.state.tenant = tenant_info(HOURS)
    assert await flow.search(2, next_monday) == []

    flow.state.tenant = tenant_info(None)
    assert len(await flow.search(2, next_monday)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("party_size", [0, 9])
async def test_party_size_checked_before_request(party_size):
    flow = BookingWorkflow(StubClient([]))
    flow.state.tenant = tenant_info(HOURS)

    with pytest.raises(InvalidPartySizeError):
        await flow.search(party_size, upcoming(1))


@pytest.mark.asyncio
async def test_slot_must_come_from_search(client: AsyncClient, test_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("auto-bistro")
    await flow.search(2, next_tuesday)

    with pytest.raises(BookingValidationError):
        flow.select_slot(TimeSlot(time=slot_at(next_tuesday, "16:00"), available_tables=1))


def test_guest_details_validated_locally():
    flow = BookingWorkflow(StubClient([]))

    with pytest.raises(BookingValidationError) as exc_info:
        flow.set_guest_details(**{**GUEST, "email": "not-an-email"})

    errors = exc_info.value.details["errors"]
    assert errors[0]["field"] == "email"
    assert flow.state.guest is None

    guest = flow.set_guest_details(**GUEST)
    assert guest.phone == "+14155550123"


# Deposits

@pytest.mark.asyncio
async def test_deposit_collected_before_confirmation(client: AsyncClient, test_db, deposit_tenant, next_tuesday):
    flow = workflow(client, card_confirmer=approve_card)
    await flow.start("deposit-grill")
    slots = await flow.search(6, next_tuesday)
    assert flow.state.deposit_required

    reservation = await flow.book(pick(slots, slot_at(next_tuesday, "19:00")), **GUEST)
    assert (await flow.verify()).ok

    assert reservation.status == "confirmed"
    assert reservation.summary.deposit_amount == 50.0
    booking = (await test_db.execute(select(Booking))).scalar_one()
    assert booking.payment_intent_id == flow.state.deposit.payment_intent_id
    assert "Deposit: $50.00" in render_confirmation(reservation).details


@pytest.mark.asyncio
async def test_no_card_element_blocks_submission(client: AsyncClient, test_db, deposit_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("deposit-grill")
    slots = await flow.search(6, next_tuesday)
    flow.select_slot(pick(slots, slot_at(next_tuesday, "19:00")))
    await flow.hold()
    flow.set_guest_details(**GUEST)

    with pytest.raises(PaymentUnavailableError):
        await flow.pay_deposit()
    with pytest.raises(DepositRequiredError):
        await flow.confirm()

    assert (await test_db.execute(select(Booking))).scalars().all() == []


@pytest.mark.asyncio
async def test_declined_card_keeps_the_attempt(client: AsyncClient, deposit_tenant, next_tuesday):
    flow = workflow(client, card_confirmer=decline_card)
    await flow.start("deposit-grill")
    slots = await flow.search(6, next_tuesday)
    flow.select_slot(pick(slots, slot_at(next_tuesday, "19:00")))
    hold = await flow.hold()
    key = flow.state.idempotency_key
    flow.set_guest_details(**GUEST)

    with pytest.raises(CardDeclinedError) as exc_info:
        await flow.pay_deposit()

    assert exc_info.value.retryable
    assert flow.state.idempotency_key == key
    assert flow.state.hold.hold_id == hold.hold_id
    assert flow.user_message() == "Your card was declined. Please try another card"

    flow.deposits.card_confirmer = approve_card
    await flow.pay_deposit()
    reservation = await flow.confirm()
    assert reservation.summary.deposit_required
    await flow.verify()


@pytest.mark.asyncio
async def test_card_confirmer_status_string(client: AsyncClient, deposit_tenant):
    async def processing(client_secret):
        return "processing"

    flow = workflow(client, card_confirmer=processing)
    await flow.start("deposit-grill")

    with pytest.raises(CardDeclinedError) as exc_info:
        await flow.deposits.collect("50.00", GUEST["email"])
    assert exc_info.value.details["status"] == "processing"


# Failures and restarts

@pytest.mark.asyncio
async def test_lost_slot_restarts_attempt(client: AsyncClient, test_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("auto-bistro")
    slots = await flow.search(6, next_tuesday)
    flow.select_slot(pick(slots, slot_at(next_tuesday, "19:00")))

    # Someone else takes T5 first
    taken = await place_hold(client, test_tenant, slot_at(next_tuesday, "19:00"), party_size=6, key="booking:other")
    assert taken.status_code == 200

    with pytest.raises(SlotUnavailableError):
        await flow.hold()

    assert flow.state.idempotency_key is None
    assert flow.state.selected_slot is None
    assert flow.state.last_error.code == "SLOT_UNAVAILABLE"

    slots = await flow.search(6, next_tuesday)
    flow.select_slot(slots[-1])
    await flow.hold()
    assert flow.state.attempts == 2


@pytest.mark.asyncio
async def test_changing_slot_after_hold_starts_new_attempt(client: AsyncClient, test_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("auto-bistro")
    slots = await flow.search(2, next_tuesday)

    flow.select_slot(pick(slots, slot_at(next_tuesday, "19:00")))
    first = await flow.hold()
    first_key = flow.state.idempotency_key

    flow.select_slot(pick(slots, slot_at(next_tuesday, "20:00")))
    assert flow.state.hold is None
    second = await flow.hold()

    assert second.hold_id != first.hold_id
    assert flow.state.idempotency_key != first_key
    assert flow.state.attempts == 2

    flow.set_guest_details(**GUEST)
    reservation = await flow.confirm()
    await flow.verify()
    assert reservation.summary.time == "20:00"


@pytest.mark.asyncio
async def test_second_booking_on_same_workflow(client: AsyncClient, test_db, test_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("auto-bistro")
    slots = await flow.search(2, next_tuesday)

    first = await flow.book(pick(slots, slot_at(next_tuesday, "19:00")), **GUEST)
    await flow.verify()
    second = await flow.book(pick(slots, slot_at(next_tuesday, "19:00")), **GUEST)
    await flow.verify()

    assert second.reservation_id != first.reservation_id
    assert flow.state.attempts == 2
    bookings = (await test_db.execute(select(Booking))).scalars().all()
    assert len(bookings) == 2


@pytest.mark.asyncio
async def test_reused_key_starts_new_attempt(client: AsyncClient, test_tenant, next_tuesday):
    flow = workflow(client)
    await flow.start("auto-bistro")
    slots = await flow.search(2, next_tuesday)
    flow.select_slot(pick(slots, slot_at(next_tuesday, "19:00")))

    taken = await place_hold(client, test_tenant, slot_at(next_tuesday, "18:00"), key="booking:shared")
    assert taken.status_code == 200
    flow.state.idempotency_key = "booking:shared"
    flow.state.keyed_request = (2, slot_at(next_tuesday, "19:00"))

    with pytest.raises(IdempotencyConflictError):
        await flow.hold()

    assert flow.state.idempotency_key is None
    assert flow.state.selected_slot is None
    assert flow.state.last_error.code == "IDEMPOTENCY_KEY_REUSED"

@pytest.mark.asyncio
async def test_invalid_slot_maps_to_client_error(client: AsyncClient, test_tenant, next_tuesday):
    api = BookingAPIClient(tenant_id=test_tenant.id, http_client=client)

    with pytest.raises(InvalidSlotError) as exc_info:
        await api.create_hold(2, slot_at(next_tuesday, "23:00"), "booking:late")

    assert exc_info.value.details["request_id"]


@pytest.mark.asyncio
async def test_unknown_reservation_reads_back_as_none(client: AsyncClient, test_tenant):
    api = BookingAPIClient(tenant_id=test_tenant.id, http_client=client)

    assert await api.get_reservation(uuid4()) is None


@pytest.mark.asyncio
async def test_slow_api_times_out():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        api = BookingAPIClient(tenant_id=uuid4(), http_client=http, timeout=0.01)

        with pytest.raises(BookingTimeoutError) as exc_info:
            await api.get_reservation(uuid4())

    assert exc_info.value.retryable
    assert not exc_info.value.restart_required


@pytest.mark.asyncio
async def test_unreachable_api_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        api = BookingAPIClient(tenant_id=uuid4(), http_client=http)

        with pytest.raises(BookingNetworkError) as exc_info:
            await api.search_availability(2, upcoming(1))

    assert exc_info.value.code == "NETWORK_ERROR"


@pytest.mark.asyncio
async def test_unexpected_server_error():
    def handler(request):
        return httpx.Response(502, text="Bad gateway")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        api = BookingAPIClient(tenant_id=uuid4(), http_client=http)

        with pytest.raises(ServiceUnavailableError):
            await api.search_availability(2, upcoming(1))


def test_user_message_for_unknown_errors():
    flow = BookingWorkflow(StubClient([]))

    assert flow.user_message() == ""
    assert flow.user_message(RuntimeError("boom")) == GENERIC_ERROR_MESSAGE


# Verification

class ReadBackClient:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def get_reservation(self, reservation_id):
        if self.error:
            raise self.error
        return self.result


def read_back(status="confirmed"):
    return ReservationReadBack(id=uuid4(), status=status, booking_time=slot_at(upcoming(1), "19:00"), party_size=2)


@pytest.mark.asyncio
async def test_verification_warns_without_raising():
    missing = await verify_reservation(ReadBackClient(), uuid4(), delay=0)
    broken = await verify_reservation(ReadBackClient(error=BookingNetworkError()), uuid4(), delay=0)
    mismatch = await verify_reservation(ReadBackClient(read_back("pending")), uuid4(), "confirmed", delay=0)
    fine = await verify_reservation(ReadBackClient(read_back()), uuid4(), "confirmed", delay=0)

    assert not missing.ok and "not found" in missing.warning
    assert not broken.ok and broken.warning.startswith("Could not verify")
    assert not mismatch.ok and mismatch.reservation.status == "pending"
    assert fine.ok and fine.warning is None


@pytest.mark.asyncio
async def test_cancelled_verification_reports_warning():
    from bookflow.client.verification import VerificationHandle

    handle = VerificationHandle.start(ReadBackClient(read_back()), uuid4(), delay=5)
    handle.cancel()

    result = await handle.result()
    assert not result.ok
    assert handle.done()


# Role cache

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_role_cache_ttl_and_confidence():
    calls = []

    async def loader(user_id):
        calls.append(user_id)
        return type("Role", (), {"role": "host", "is_staff": True})()

    clock = FakeClock()
    cache = RoleCache(loader, ttl_seconds=600, clock=clock)

    first = await cache.get("u1")
    second = await cache.get("u1")
    assert (first.confidence, second.confidence) == (CONFIDENCE_VERIFIED, CONFIDENCE_CACHED)
    assert second.is_staff and second.role == "host"
    assert calls == ["u1"]

    clock.now += 600
    assert (await cache.get("u1")).confidence == CONFIDENCE_VERIFIED

    assert (await cache.revalidate("u1")).confidence == CONFIDENCE_VERIFIED
    cache.invalidate("u1")
    await cache.get("u1")
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_role_cache_reads_through_api(client: AsyncClient, test_user, viewer_user):
    async def loader(user_id):
        user = test_user if str(test_user.id) == user_id else viewer_user
        api = BookingAPIClient(http_client=client, access_token=create_access_token(user))
        return await api.get_role()

    cache = RoleCache(loader)

    owner = await cache.get(test_user.id)
    viewer = await cache.get(viewer_user.id)

    assert owner.role == "restaurant_admin" and owner.is_staff
    assert viewer.role == "staff_viewer" and not viewer.is_staff

    cache.invalidate()
    assert (await cache.get(viewer_user.id)).confidence == CONFIDENCE_VERIFIED


def test_confirmation_number_fallback():
    reservation = ReservationResponse(
        reservation_id=uuid4(),
        confirmation_number="",
        status="confirmed",
        summary=ReservationSummary(date="2030-01-01", time="19:00", party_size=2),
    )

    view = render_confirmation(reservation)

    assert view.confirmation_number == f"CONF{str(reservation.reservation_id)[-6:].upper()}"
    assert view.details == ["Date & Time: 2030-01-01 19:00", "Party Size: 2 guests"]
