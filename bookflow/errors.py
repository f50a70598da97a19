"""
Booking error taxonomy shared by the API and the booking client.

Every error carries a stable ``code`` that travels over the wire in the
error envelope, so the client can rebuild the same exception class from a
response body. ``retryable`` means the same action may be re-invoked with the
same idempotency key; ``restart_required`` means the caller has to go back to
the availability search and start a new attempt.
"""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for all booking flow failures"""

    code = "BOOKING_ERROR"
    status_code = 400
    retryable = False
    restart_required = False
    default_message = "Booking request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details or None,
            },
        }

    def user_message(self) -> str:
        """Copy safe to show to a guest"""
        return self.message


# Input validation

class BookingValidationError(BookingError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Please check your booking details"


class InvalidPartySizeError(BookingValidationError):
    code = "INVALID_PARTY_SIZE"
    status_code = 400
    default_message = "Party size is not valid for this restaurant"


class InvalidSlotError(BookingValidationError):
    code = "INVALID_SLOT"
    status_code = 400
    default_message = "The selected time is outside of opening hours"


class IdempotencyKeyMissingError(BookingValidationError):
    code = "IDEMPOTENCY_KEY_REQUIRED"
    status_code = 400
    default_message = "An Idempotency-Key header is required"


class IdempotencyConflictError(BookingError):
    code = "IDEMPOTENCY_KEY_REUSED"
    status_code = 422
    default_message = "Idempotency key was already used for a different request"


class TenantNotFoundError(BookingError):
    code = "TENANT_NOT_FOUND"
    status_code = 404
    default_message = "Restaurant configuration not found"


class ReservationNotFoundError(BookingError):
    code = "RESERVATION_NOT_FOUND"
    status_code = 404
    default_message = "Reservation not found"


class InvalidTransitionError(BookingError):
    code = "INVALID_TRANSITION"
    status_code = 409
    default_message = "Booking cannot move to that status"


# Capacity / state

class CapacityError(BookingError):
    restart_required = True
    status_code = 409


class SlotUnavailableError(CapacityError):
    code = "SLOT_UNAVAILABLE"
    default_message = "That time is no longer available. Please pick another slot"


class HoldNotFoundError(CapacityError):
    code = "HOLD_NOT_FOUND"
    status_code = 404
    default_message = "Your hold was not found. Please select a time again"


class HoldExpiredError(CapacityError):
    code = "HOLD_EXPIRED"
    status_code = 410
    default_message = "Your hold has expired. Please select a time again"


# Network / timeout

class BookingNetworkError(BookingError):
    code = "NETWORK_ERROR"
    status_code = 503
    retryable = True
    default_message = "Network connection issue. Please try again"


class BookingTimeoutError(BookingNetworkError):
    code = "TIMEOUT"
    status_code = 504
    default_message = "Request timed out. Please try again"


class ServiceUnavailableError(BookingNetworkError):
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"


# Payments

class PaymentError(BookingError):
    status_code = 402


class CardDeclinedError(PaymentError):
    code = "CARD_DECLINED"
    retryable = True
    default_message = "Your card was declined. Please try another card"


class PaymentIntentError(PaymentError):
    code = "PAYMENT_INTENT_FAILED"
    status_code = 502
    default_message = "We could not start the deposit payment. Please try again"


class PaymentUnavailableError(PaymentError):
    code = "PAYMENT_UNAVAILABLE"
    status_code = 503
    default_message = "Card payments are unavailable right now, so this booking cannot be submitted"


class DepositNotEnabledError(PaymentError):
    code = "DEPOSIT_NOT_ENABLED"
    status_code = 400
    default_message = "This restaurant does not take deposits"


class DepositRequiredError(PaymentError):
    code = "DEPOSIT_REQUIRED"
    default_message = "A paid deposit is required to complete this booking"


class DepositNotPaidError(PaymentError):
    code = "DEPOSIT_NOT_PAID"
    default_message = "The deposit payment has not completed"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        BookingError,
        BookingValidationError,
        InvalidPartySizeError,
        InvalidSlotError,
        IdempotencyKeyMissingError,
        IdempotencyConflictError,
        TenantNotFoundError,
        ReservationNotFoundError,
        InvalidTransitionError,
        SlotUnavailableError,
        HoldNotFoundError,
        HoldExpiredError,
        BookingNetworkError,
        BookingTimeoutError,
        ServiceUnavailableError,
        CardDeclinedError,
        PaymentIntentError,
        PaymentUnavailableError,
        DepositNotEnabledError,
        DepositRequiredError,
        DepositNotPaidError,
    )
}


def error_from_payload(payload: Dict[str, Any], status_code: int) -> BookingError:
    """Rebuild a BookingError from an error envelope"""
    error = payload.get("error") or {}
    code = error.get("code")
    message = error.get("message")
    details = error.get("details") or {}
    if isinstance(details, dict) and error.get("request_id"):
        details = {**details, "request_id": error["request_id"]}

    cls = ERRORS_BY_CODE.get(code)
    if cls is None:
        if status_code >= 500:
            cls = ServiceUnavailableError
        else:
            cls = BookingError
    exc = cls(message, details=details)
    if cls is BookingError and code:
        exc.code = code
    return exc
