"""
Step-by-step guest booking flow.

search -> select_slot -> hold -> set_guest_details -> pay_deposit (when the
policy requires it) -> confirm -> verify

All progress lives on an explicit ``BookingState``. One idempotency key is
generated per booking attempt and sent with both the hold and the
confirmation; the server scopes stored results per operation, so re-invoking
a step after a network failure or timeout replays instead of duplicating.
Errors that need a new slot (``restart_required``) start a fresh attempt with
a new key, as does holding a different slot or party size, or holding again
after a reservation went through.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union
import uuid

from pydantic import ValidationError
import structlog

from bookflow.booking.hours import clamp_slots
from bookflow.client.api import BookingAPIClient
from bookflow.client.verification import VerificationHandle, VerificationResult
from bookflow.errors import (
    BookingError,
    BookingValidationError,
    CardDeclinedError,
    DepositRequiredError,
    IdempotencyConflictError,
    InvalidPartySizeError,
    PaymentUnavailableError,
)
from bookflow.payments.deposits import to_cents
from bookflow.schemas.booking import (
    AvailabilityResponse,
    DepositProof,
    EffectiveDepositPolicy,
    GuestDetails,
    HoldResponse,
    ReservationResponse,
    TimeSlot,
)
from bookflow.schemas.tenant import TenantInfo

logger = structlog.get_logger()

# Receives only the intent's client secret, returns a status string or an
# object with a ``status`` attribute.
CardConfirmer = Callable[[str], Awaitable[Any]]

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


def new_idempotency_key() -> str:
    return f"booking:{uuid.uuid4()}"


@dataclass
class BookingState:
    tenant: Optional[TenantInfo] = None
    party_size: Optional[int] = None
    service_date: Optional[date] = None
    deposit_policy: Optional[EffectiveDepositPolicy] = None
    slots: List[TimeSlot] = field(default_factory=list)
    alternatives: List[TimeSlot] = field(default_factory=list)
    reason: Optional[str] = None
    selected_slot: Optional[TimeSlot] = None
    idempotency_key: Optional[str] = None
    # party size and slot time the current key was first sent with
    keyed_request: Optional[Tuple[int, datetime]] = None
    hold: Optional[HoldResponse] = None
    guest: Optional[GuestDetails] = None
    deposit: Optional[DepositProof] = None
    reservation: Optional[ReservationResponse] = None
    verification: Optional[VerificationHandle] = None
    last_error: Optional[BookingError] = None
    attempts: int = 0

    @property
    def deposit_required(self) -> bool:
        return bool(self.deposit_policy and self.deposit_policy.required)


def _intent_status(result: Any) -> str:
    status = getattr(result, "status", result)
    return str(getattr(status, "value", status))


class DepositCollector:
    """Create intent -> hosted card confirmation -> status check"""

    def __init__(self, client: BookingAPIClient, card_confirmer: Optional[CardConfirmer] = None):
        self.client = client
        self.card_confirmer = card_confirmer

    async def collect(
        self,
        amount: Union[float, str],
        email: str,
        description: Optional[str] = None,
    ) -> DepositProof:
        if self.card_confirmer is None:
            raise PaymentUnavailableError(
                "Card payments are not available right now, so this booking cannot be submitted"
            )

        amount_cents = to_cents(amount)
        intent = await self.client.create_deposit_intent(amount_cents, email, description)
        logger.info("Deposit intent created", payment_intent_id=intent.payment_intent_id, amount=amount_cents)

        result = await self.card_confirmer(intent.client_secret)
        status = _intent_status(result)
        if status != "succeeded":
            logger.warning("Deposit card not accepted", payment_intent_id=intent.payment_intent_id, status=status)
            raise CardDeclinedError(details={"payment_intent_id": intent.payment_intent_id, "status": status})

        return DepositProof(
            required=True,
            amount_cents=amount_cents,
            paid=True,
            payment_intent_id=intent.payment_intent_id,
        )


class BookingWorkflow:
    """Drives one guest through the booking flow against the public API"""

    def __init__(
        self,
        client: BookingAPIClient,
        card_confirmer: Optional[CardConfirmer] = None,
        state: Optional[BookingState] = None,
        verification_delay: Optional[float] = None,
    ):
        self.client = client
        self.deposits = DepositCollector(client, card_confirmer)
        self.state = state or BookingState()
        self.verification_delay = verification_delay

    async def _guard(self, step: str, coro):
        try:
            return await coro
        except BookingError as e:
            self.state.last_error = e
            logger.warning(
                "Booking step failed",
                step=step,
                code=e.code,
                retryable=e.retryable,
                restart_required=e.restart_required,
            )
            if e.restart_required or isinstance(e, IdempotencyConflictError):
                self.restart()
            raise

    async def start(self, slug_or_id: str) -> TenantInfo:
        """Resolve the restaurant the guest is booking at"""
        self.state.tenant = await self._guard("resolve", self.client.resolve_tenant(slug_or_id))
        return self.state.tenant

    def _hours(self):
        return self.state.tenant.business_hours if self.state.tenant else None

    def _timezone(self) -> Optional[str]:
        return self.state.tenant.timezone if self.state.tenant else None

    def _check_party_size(self, party_size: int) -> None:
        if not isinstance(party_size, int) or party_size < 1:
            raise InvalidPartySizeError("Party size must be at least 1", details={"party_size": party_size})
        if self.state.tenant and party_size > self.state.tenant.features.max_party_size:
            raise InvalidPartySizeError(
                f"Party size cannot exceed {self.state.tenant.features.max_party_size}",
                details={"party_size": party_size},
            )

    async def search(self, party_size: int, service_date: date) -> List[TimeSlot]:
        self._check_party_size(party_size)
        response: AvailabilityResponse = await self._guard(
            "availability", self.client.search_availability(party_size, service_date)
        )

        state = self.state
        state.party_size = party_size
        state.service_date = service_date
        state.deposit_policy = response.deposit_policy
        state.reason = response.reason
        state.slots = clamp_slots(response.slots, self._hours(), self._timezone())
        state.alternatives = clamp_slots(response.alternatives, self._hours(), self._timezone())
        state.selected_slot = None

        logger.info(
            "Availability loaded",
            tenant_id=self.client.tenant_id,
            slots=len(state.slots),
            alternatives=len(state.alternatives),
            reason=state.reason,
        )
        return state.slots

    def select_slot(self, slot: TimeSlot) -> None:
        offered = [s.time for s in self.state.slots + self.state.alternatives]
        if slot.time not in offered:
            raise BookingValidationError("Please pick one of the available times")
        state = self.state
        if state.hold is not None and state.keyed_request != (state.party_size, slot.time):
            state.hold = None
        state.selected_slot = slot

    async def hold(self) -> HoldResponse:
        state = self.state
        if state.selected_slot is None or state.party_size is None:
            raise BookingValidationError("Please pick a time first")
        request = (state.party_size, state.selected_slot.time)
        if state.idempotency_key is not None and (
            state.reservation is not None or state.keyed_request != request
        ):
            self._next_attempt()
        if state.idempotency_key is None:
            state.idempotency_key = new_idempotency_key()
            state.keyed_request = request
            state.attempts += 1

        state.hold = await self._guard(
            "hold",
            self.client.create_hold(state.party_size, state.selected_slot.time, state.idempotency_key),
        )
        logger.info("Slot held", hold_id=str(state.hold.hold_id), expires_at=state.hold.expires_at.isoformat())
        return state.hold

    def set_guest_details(self, **fields) -> GuestDetails:
        """Validate guest details before anything goes over the network"""
        try:
            self.state.guest = GuestDetails(**fields)
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise BookingValidationError(errors[0]["message"] if errors else None, details={"errors": errors})
        return self.state.guest

    async def pay_deposit(self) -> Optional[DepositProof]:
        state = self.state
        if not state.deposit_required:
            return None
        if state.deposit and state.deposit.paid:
            return state.deposit
        if state.guest is None:
            raise BookingValidationError("Please enter your details first")

        policy = state.deposit_policy
        state.deposit = await self._guard(
            "deposit",
            self.deposits.collect(policy.amount, state.guest.email, policy.description),
        )
        return state.deposit

    async def confirm(self) -> ReservationResponse:
        state = self.state
        if state.hold is None:
            raise BookingValidationError("Your table is no longer held, please pick a time again")
        if state.guest is None:
            raise BookingValidationError("Please enter your details first")
        if state.deposit_required and not (state.deposit and state.deposit.paid):
            raise DepositRequiredError()

        guest = state.guest
        if state.deposit and state.deposit.payment_intent_id:
            guest = guest.model_copy(update={"payment_intent_id": state.deposit.payment_intent_id})

        state.reservation = await self._guard(
            "confirm",
            self.client.confirm(state.hold.hold_id, guest, state.idempotency_key, state.deposit),
        )
        logger.info(
            "Reservation confirmed",
            reservation_id=str(state.reservation.reservation_id),
            status=state.reservation.status,
        )

        state.verification = VerificationHandle.start(
            self.client,
            state.reservation.reservation_id,
            expected_status=state.reservation.status,
            delay=self.verification_delay,
        )
        return state.reservation

    async def verify(self) -> Optional[VerificationResult]:
        if self.state.verification is None:
            return None
        return await self.state.verification.result()

    async def book(self, slot: TimeSlot, **guest_fields) -> ReservationResponse:
        """select_slot through confirm for a slot from the last search"""
        self.select_slot(slot)
        await self.hold()
        self.set_guest_details(**guest_fields)
        await self.pay_deposit()
        return await self.confirm()

    def _next_attempt(self) -> None:
        """Keep the selected slot but stop replaying the previous attempt"""
        state = self.state
        if state.reservation is not None:
            # the deposit was applied to that reservation
            state.deposit = None
        state.hold = None
        state.reservation = None
        state.idempotency_key = None
        state.keyed_request = None
        logger.info("New booking attempt", attempts=state.attempts)

    def restart(self) -> None:
        """Drop the slot and hold and begin a new attempt with a fresh key"""
        state = self.state
        state.selected_slot = None
        state.hold = None
        state.reservation = None
        state.idempotency_key = None
        state.keyed_request = None
        logger.info("Booking attempt restarted", attempts=state.attempts)

    def user_message(self, error: Optional[BaseException] = None) -> str:
        error = error if error is not None else self.state.last_error
        if error is None:
            return ""
        if isinstance(error, BookingError):
            return error.user_message()
        return GENERIC_ERROR_MESSAGE
