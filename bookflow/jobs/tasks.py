"""Background job tasks"""

from datetime import datetime
from typing import Optional
import asyncio

from sqlalchemy import select
import structlog

from bookflow.database import SessionLocal, engine, utcnow
from bookflow.jobs.celery_app import celery_app
from bookflow.models.tenant import Tenant
from bookflow.services.holds import expire_holds
from bookflow.services.lifecycle import due_reminders
from bookflow.services.notifications import reminder_message, send_sms

logger = structlog.get_logger()


def run_async(coro):
    """
    Run a coroutine to completion from a worker thread.

    Every call gets its own event loop, so pooled connections are released
    before that loop closes.
    """
    async def runner():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(runner())


async def sweep_expired_holds(session_factory=SessionLocal, now: Optional[datetime] = None) -> int:
    async with session_factory() as db:
        return await expire_holds(db, now=now)


async def dispatch_reminders(session_factory=SessionLocal, now: Optional[datetime] = None) -> int:
    """Text guests whose confirmed booking starts in two to four hours"""
    sent = 0
    async with session_factory() as db:
        bookings = await due_reminders(db, now=now)
        tenants = {}

        for booking in bookings:
            if not booking.guest_phone:
                continue

            tenant = tenants.get(booking.tenant_id)
            if tenant is None:
                result = await db.execute(select(Tenant).where(Tenant.id == booking.tenant_id))
                tenant = tenants[booking.tenant_id] = result.scalar_one()

            if send_sms(booking.guest_phone, reminder_message(tenant, booking)) is None:
                continue

            booking.reminder_sent = utcnow()
            await db.commit()
            sent += 1
            logger.info("Sent reservation reminder", reservation_id=str(booking.id))

    return sent


@celery_app.task(name="expire_booking_holds")
def expire_booking_holds():
    """Delete holds whose TTL has passed"""
    removed = run_async(sweep_expired_holds())
    logger.info("Hold sweep finished", removed=removed)
    return removed


@celery_app.task(name="send_reservation_reminders")
def send_reservation_reminders():
    """Send reminders for upcoming reservations"""
    logger.info("Sending reservation reminders")
    return run_async(dispatch_reminders())
