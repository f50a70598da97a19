"""Guest-facing confirmation copy"""

from dataclasses import dataclass, field
from typing import List

from bookflow.booking.codes import confirmation_number
from bookflow.schemas.booking import ReservationResponse


@dataclass
class ConfirmationView:
    title: str
    message: str
    number_label: str
    confirmation_number: str
    is_pending: bool
    details: List[str] = field(default_factory=list)

    @property
    def heading(self) -> str:
        return f"{self.number_label}{self.confirmation_number}"


def render_confirmation(reservation: ReservationResponse, restaurant_name: str = "") -> ConfirmationView:
    """Pending requests and confirmed bookings get different copy"""
    is_pending = reservation.status == "pending"
    number = reservation.confirmation_number or confirmation_number(reservation.reservation_id, "confirmed")
    summary = reservation.summary

    details = []
    if restaurant_name:
        details.append(f"Restaurant: {restaurant_name}")
    details.append(f"Date & Time: {summary.date} {summary.time}")
    details.append(f"Party Size: {summary.party_size} guests")
    if summary.table_info:
        details.append(f"Table: {summary.table_info}")
    if summary.deposit_required:
        details.append(f"Deposit: ${summary.deposit_amount:.2f}")

    if is_pending:
        return ConfirmationView(
            title="Reservation Submitted",
            message="Your request is pending approval. You will receive a text message once it is reviewed.",
            number_label="Request #",
            confirmation_number=number,
            is_pending=True,
            details=details,
        )

    return ConfirmationView(
        title="Booking Confirmed",
        message="Your table has been reserved successfully.",
        number_label="Confirmation #",
        confirmation_number=number,
        is_pending=False,
        details=details,
    )
