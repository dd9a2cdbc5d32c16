"""Time windows and overlap arithmetic for resource-bound bookings."""

import math
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from reservations.core.exceptions import ValidationError

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` in UTC."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValidationError("Window boundaries must be timezone-aware")
        if self.end <= self.start:
            raise ValidationError("Window end must be after its start")

    def overlaps(self, other: "TimeWindow") -> bool:
        """Touching boundaries do not overlap."""
        return self.start < other.end and self.end > other.start

    def padded(self, minutes: int) -> "TimeWindow":
        delta = timedelta(minutes=minutes)
        return TimeWindow(self.start - delta, self.end + delta)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and end_a > start_b


def parse_hhmm(value: str) -> time:
    """Parse a ``HH:MM`` wall-clock time."""
    match = _HHMM.match(value or "")
    if not match:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone '{name}'")


def slot_window(slot_date: date, slot_time: str, duration_minutes: int, timezone: str) -> TimeWindow:
    """UTC window occupied by a date + time slot in the asset's timezone."""
    local_start = datetime.combine(slot_date, parse_hhmm(slot_time), tzinfo=get_zone(timezone))
    start = local_start.astimezone(UTC)
    return TimeWindow(start, start + timedelta(minutes=duration_minutes))


def billable_days(window: TimeWindow) -> int:
    """Started days in a range booking, at least one."""
    return max(1, math.ceil(window.duration.total_seconds() / 86400))


@dataclass(frozen=True)
class RequestedWindow:
    """What a reservation asks of an asset: a window, plus its slot for slot assets."""

    window: TimeWindow
    quantity: int = 1
    slot_date: date | None = None
    slot_time: str | None = None

    @property
    def is_slot(self) -> bool:
        return self.slot_date is not None
