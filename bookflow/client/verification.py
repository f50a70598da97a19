"""Post-confirmation read-back that never fails the booking"""

from dataclasses import dataclass
from typing import Optional
import asyncio

import structlog

from bookflow.config import settings
from bookflow.schemas.booking import ReservationReadBack

logger = structlog.get_logger()


@dataclass
class VerificationResult:
    ok: bool
    warning: Optional[str] = None
    reservation: Optional[ReservationReadBack] = None


async def verify_reservation(
    client,
    reservation_id,
    expected_status: Optional[str] = None,
    delay: Optional[float] = None,
) -> VerificationResult:
    """
    Wait, then read the reservation back.

    Missing rows, status mismatches and read errors come back as warnings;
    nothing here raises, rolls back or retries the booking.
    """
    delay = settings.verification_delay_seconds if delay is None else delay
    if delay > 0:
        await asyncio.sleep(delay)

    try:
        reservation = await client.get_reservation(reservation_id)
    except Exception as e:
        logger.warning("Reservation verification failed", reservation_id=str(reservation_id), error=str(e))
        return VerificationResult(ok=False, warning=f"Could not verify reservation: {e}")

    if reservation is None:
        logger.warning("Reservation not found during verification", reservation_id=str(reservation_id))
        return VerificationResult(ok=False, warning="Reservation was not found when read back")

    if expected_status and reservation.status != expected_status:
        logger.warning(
            "Reservation status mismatch",
            reservation_id=str(reservation_id),
            expected=expected_status,
            actual=reservation.status,
        )
        return VerificationResult(
            ok=False,
            warning=f"Reservation status is {reservation.status}, expected {expected_status}",
            reservation=reservation,
        )

    logger.info("Reservation verified", reservation_id=str(reservation_id))
    return VerificationResult(ok=True, reservation=reservation)


class VerificationHandle:
    """Background verification task with its own result"""

    def __init__(self, task: "asyncio.Task[VerificationResult]"):
        self._task = task

    @classmethod
    def start(cls, client, reservation_id, expected_status: Optional[str] = None, delay: Optional[float] = None):
        task = asyncio.create_task(verify_reservation(client, reservation_id, expected_status, delay))
        return cls(task)

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def result(self) -> VerificationResult:
        try:
            return await self._task
        except asyncio.CancelledError:
            return VerificationResult(ok=False, warning="Verification was cancelled")
