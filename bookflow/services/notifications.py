"""Guest and staff SMS notifications for bookings"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.rest import Client as TwilioClient
import structlog

from bookflow.booking.hours import to_local
from bookflow.config import settings
from bookflow.database import utcnow
from bookflow.models.booking import Booking, BookingStatus
from bookflow.models.tenant import Tenant, StaffContact

logger = structlog.get_logger()


def send_sms(to: str, body: str) -> Optional[str]:
    """Send one SMS, returning the message sid or None when not sent"""
    if not settings.twilio_configured:
        logger.info("Twilio not configured, skipping SMS", to=to[-4:])
        return None

    try:
        client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
        message = client.messages.create(
            body=body,
            from_=settings.twilio_phone_number,
            to=to,
        )
        return message.sid
    except Exception as e:
        logger.error("Failed to send SMS", to=to[-4:], error=str(e))
        return None


def _local_when(tenant: Tenant, booking: Booking, fmt: str) -> str:
    return to_local(booking.booking_time, tenant.timezone).strftime(fmt)


def guest_message(tenant: Tenant, booking: Booking) -> str:
    when = _local_when(tenant, booking, "%A, %B %d at %I:%M %p")
    if booking.status == BookingStatus.PENDING:
        message = f"We received your reservation request at {tenant.name} "
        message += f"for {booking.party_size} guests on {when}. "
        message += f"Request #{booking.confirmation_code}. We'll confirm shortly."
    elif booking.status == BookingStatus.CANCELLED:
        message = f"Your reservation request at {tenant.name} for {when} could not be accepted. "
        message += "Please contact the restaurant to find another time."
    else:
        message = f"Your reservation at {tenant.name} is confirmed! "
        message += f"{booking.party_size} guests on {when}. "
        message += f"Confirmation #{booking.confirmation_code}."
    return message


async def notify_guest(tenant: Tenant, booking: Booking, db: AsyncSession) -> bool:
    """Text the guest about their booking's current status"""
    if not booking.guest_phone:
        return False

    sid = send_sms(booking.guest_phone, guest_message(tenant, booking))
    if sid is None:
        return False

    booking.confirmation_sent = utcnow()
    await db.commit()
    logger.info("Guest notified", reservation_id=str(booking.id), status=booking.status)
    return True


async def notify_staff(tenant: Tenant, booking: Booking, db: AsyncSession) -> int:
    """Text staff contacts about a new booking; returns messages sent"""
    result = await db.execute(
        select(StaffContact).where(
            StaffContact.tenant_id == tenant.id,
            StaffContact.notify_on_reservation == True,
            StaffContact.is_active == True,
        )
    )
    staff_contacts = result.scalars().all()
    if not staff_contacts:
        return 0

    label = "reservation request" if booking.status == BookingStatus.PENDING else "reservation"
    message = f"New {label}! {booking.guest_name}, "
    message += f"{booking.party_size} guests. "
    message += _local_when(tenant, booking, "%a %m/%d %I:%M %p")

    sent = 0
    for contact in staff_contacts:
        if send_sms(contact.phone, message):
            sent += 1
    return sent


async def notify_new_booking(tenant: Tenant, booking: Booking, db: AsyncSession) -> None:
    """Best-effort notifications after a booking is committed"""
    try:
        await notify_guest(tenant, booking, db)
        await notify_staff(tenant, booking, db)
    except Exception as e:
        logger.error(
            "Failed to send booking notifications",
            reservation_id=str(booking.id),
            error=str(e),
        )


def reminder_message(tenant: Tenant, booking: Booking) -> str:
    when = _local_when(tenant, booking, "%I:%M %p")
    return (
        f"Reminder: your table for {booking.party_size} at {tenant.name} "
        f"is coming up at {when}. Confirmation #{booking.confirmation_code}. See you soon!"
    )
