"""Guest-facing confirmation numbers"""

from uuid import UUID
from typing import Union

CONFIRMED_PREFIX = "CONF"
PENDING_PREFIX = "PEND"


def confirmation_number(reservation_id: Union[UUID, str], status: str) -> str:
    """CONF/PEND followed by the last six characters of the reservation id"""
    prefix = PENDING_PREFIX if status == "pending" else CONFIRMED_PREFIX
    return f"{prefix}{str(reservation_id)[-6:].upper()}"
