"""Timezone helpers for the single organization timezone."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from consular_scheduling.core.config import settings

logger = logging.getLogger(__name__)


def get_timezone(name: str | None = None) -> ZoneInfo:
    """Get a ZoneInfo for ``name`` (default: organization timezone) with UTC fallback."""
    name = name or settings.ORGANIZATION_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, falling back to UTC")
        return ZoneInfo("UTC")


def local_datetime(day: date, at: time, tz: ZoneInfo | None = None) -> datetime:
    """Combine a calendar day and wall-clock time in the organization timezone."""
    return datetime.combine(day, at, tzinfo=tz or get_timezone())


def local_date(moment: datetime, tz: ZoneInfo | None = None) -> date:
    """Calendar day of ``moment`` in the organization timezone (naive = UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz or get_timezone()).date()


def day_bounds(day: date, tz: ZoneInfo | None = None) -> tuple[datetime, datetime]:
    """Half-open [start, end) of a local calendar day."""
    tz = tz or get_timezone()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(date.fromordinal(day.toordinal() + 1), time.min, tzinfo=tz)
    return start, end
