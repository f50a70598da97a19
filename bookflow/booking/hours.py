"""
Business hours, tenant-local time and slot clamping.

Hours are stored per weekday name, e.g. ``{"tuesday": {"open": "17:00",
"close": "22:00"}}``. A weekday that is missing, marked ``"closed": true`` or
lacks either bound is closed. A close time at or before the open time means
service runs past midnight, so early-morning minutes count towards the
previous day's window.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """Parse "HH:MM" or "HH:MM:SS" into minutes after midnight"""
    parts = value.strip().split(":")
    hours, minutes = int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day: {value}")
    return hours * 60 + minutes


def window_for_date(hours_json: Optional[Dict[str, Any]], service_date: date) -> Optional[Tuple[int, int]]:
    """
    Return the (open, close) window in local minutes for a date, or None when
    closed. Overnight windows have close > 1440.
    """
    if not hours_json:
        return None
    day = hours_json.get(WEEKDAYS[service_date.weekday()])
    if not day or day.get("closed") or not day.get("open") or not day.get("close"):
        return None
    open_min = parse_hhmm(day["open"])
    close_min = parse_hhmm(day["close"])
    if close_min <= open_min:
        close_min += MINUTES_PER_DAY
    return open_min, close_min


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz_name or "UTC")


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_utc_naive(value: datetime) -> datetime:
    """Naive UTC datetime, the storage convention"""
    return as_utc(value).replace(tzinfo=None)


def to_local(value: datetime, tz_name: Optional[str]) -> datetime:
    return as_utc(value).astimezone(get_zone(tz_name))


def local_to_utc(service_date: date, minute_of_day: int, tz_name: Optional[str]) -> datetime:
    """Convert tenant-local wall time on a date to an aware UTC datetime"""
    day_offset, minute = divmod(minute_of_day, MINUTES_PER_DAY)
    local_day = service_date + timedelta(days=day_offset)
    local = datetime.combine(local_day, time(minute // 60, minute % 60), tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc)


def is_within_hours(value: datetime, hours_json: Optional[Dict[str, Any]], tz_name: Optional[str]) -> bool:
    """True when an instant falls inside the window for its local weekday"""
    local = to_local(value, tz_name)
    minute = local.hour * 60 + local.minute
    local_date = local.date()

    window = window_for_date(hours_json, local_date)
    if window and window[0] <= minute < window[1]:
        return True

    # Late-night minutes belonging to yesterday's overnight window
    previous = window_for_date(hours_json, local_date - timedelta(days=1))
    if previous and previous[1] > MINUTES_PER_DAY:
        return previous[0] <= minute + MINUTES_PER_DAY < previous[1]
    return False


def slot_times_for_date(
    service_date: date,
    window: Tuple[int, int],
    interval_minutes: int,
    tz_name: Optional[str],
) -> List[datetime]:
    """Slot start times on the grid from open (inclusive) to close (exclusive)"""
    open_min, close_min = window
    step = max(5, interval_minutes or 30)
    return [
        local_to_utc(service_date, minute, tz_name)
        for minute in range(open_min, close_min, step)
    ]


def _slot_time(slot: Any) -> datetime:
    raw = slot["time"] if isinstance(slot, dict) else slot.time
    if isinstance(raw, str):
        raw = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return raw


def clamp_slots(
    slots: Iterable[Any],
    hours_json: Optional[Dict[str, Any]],
    tz_name: Optional[str],
) -> List[Any]:
    """
    Drop slots outside business hours.

    Unknown hours (None) leave the list untouched; a known but closed weekday
    removes every slot on it. Unparseable slot times are dropped.
    """
    slots = list(slots)
    if hours_json is None:
        return slots

    kept = []
    for slot in slots:
        try:
            when = _slot_time(slot)
        except (KeyError, AttributeError, ValueError, TypeError):
            continue
        if is_within_hours(when, hours_json, tz_name):
            kept.append(slot)
    return kept
