"""Slot generation and conflict detection.

Both are pure functions of their inputs: no database access and no
wall-clock reads, so results are deterministic and restartable.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, NamedTuple, Protocol
from zoneinfo import ZoneInfo

from consular_scheduling.db.enums import NON_BLOCKING_STATUSES, AppointmentStatus
from consular_scheduling.services.errors import ValidationError
from consular_scheduling.services.operating_hours_service import OperatingHours
from consular_scheduling.utils.datetime_helpers import get_timezone, local_datetime


class TimeSlot(NamedTuple):
    """Candidate time window, half-open [start, end), timezone-aware."""
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class ScheduledItem(Protocol):
    """Anything with a window and a status (Appointment rows satisfy this)."""
    start_time: datetime
    end_time: datetime
    status: str


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open interval intersection: touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


def validate_slot(slot: TimeSlot) -> None:
    """Raise ValidationError for naive or empty/inverted windows."""
    if slot.start.tzinfo is None or slot.end.tzinfo is None:
        raise ValidationError("Slot boundaries must be timezone-aware")
    if slot.start >= slot.end:
        raise ValidationError("Start time must be before end time")


def generate_slots(
    day: date,
    duration_minutes: int,
    hours: OperatingHours,
    tz: ZoneInfo | None = None,
) -> list[TimeSlot]:
    """
    Build the ordered candidate slots of one day.

    Starts at opening time and steps by the slot granularity while the slot
    still ends at or before closing time. Returns [] when the organization
    is closed that weekday or the duration exceeds the window.
    """
    if duration_minutes <= 0:
        raise ValidationError("Duration must be positive")
    if not hours.is_open_on(day.weekday()):
        return []

    tz = tz or get_timezone()
    # Build in local wall-clock time, then step in UTC so DST days keep real durations
    day_start = local_datetime(day, hours.start_time, tz).astimezone(timezone.utc)
    day_end = local_datetime(day, hours.end_time, tz).astimezone(timezone.utc)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=hours.slot_granularity_minutes)

    slots: list[TimeSlot] = []
    current = day_start
    while current + duration <= day_end:
        slots.append(TimeSlot(start=current, end=current + duration))
        current += step
    return slots


def blocking(existing: Iterable[ScheduledItem]) -> list[ScheduledItem]:
    """Drop cancelled and rescheduled items; they never hold a slot."""
    return [
        item for item in existing
        if AppointmentStatus(item.status) not in NON_BLOCKING_STATUSES
    ]


def find_conflicts(candidate: TimeSlot, existing: Iterable[ScheduledItem]) -> list[ScheduledItem]:
    """Existing blocking items whose window intersects the candidate."""
    return [
        item for item in blocking(existing)
        if intervals_overlap(candidate.start, candidate.end, item.start_time, item.end_time)
    ]


def has_conflict(candidate: TimeSlot, existing: Iterable[ScheduledItem]) -> bool:
    """True if any blocking item overlaps the candidate window."""
    return bool(find_conflicts(candidate, existing))
