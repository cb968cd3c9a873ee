"""Operating hours registry - per-organization (and per-service) working windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from consular_scheduling.core.config import settings
from consular_scheduling.db.models import OperatingHours as OperatingHoursRow
from consular_scheduling.services.errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class OperatingHours:
    """Immutable view of an operating-hours row used by the scheduling core."""

    organization_id: UUID
    service_id: UUID | None
    weekdays: frozenset[int]
    start_time: time
    end_time: time
    slot_granularity_minutes: int = 30

    @property
    def window_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    def is_open_on(self, weekday: int) -> bool:
        return weekday in self.weekdays


def _to_value(row: OperatingHoursRow) -> OperatingHours:
    return OperatingHours(
        organization_id=row.organization_id,
        service_id=row.service_id,
        weekdays=frozenset(row.weekdays),
        start_time=row.start_time,
        end_time=row.end_time,
        slot_granularity_minutes=row.slot_granularity_minutes,
    )


def validate_hours(
    weekdays: list[int] | set[int] | frozenset[int],
    start_time: time,
    end_time: time,
    slot_granularity_minutes: int,
) -> None:
    """Raise ValidationError unless the window is well-formed."""
    if not weekdays:
        raise ValidationError("At least one weekday is required")
    invalid = [d for d in weekdays if not 0 <= d <= 6]
    if invalid:
        raise ValidationError(f"Invalid weekdays {sorted(invalid)} (Monday=0, Sunday=6)")
    if start_time >= end_time:
        raise ValidationError("Opening time must be before closing time")
    if slot_granularity_minutes <= 0:
        raise ValidationError("Slot granularity must be positive")


def get_hours(
    db: Session,
    organization_id: UUID,
    service_id: UUID | None = None,
) -> OperatingHours:
    """
    Get operating hours for an organization, preferring the service-specific row.

    Raises:
        NotFoundError: the organization has no configured hours
    """
    query = select(OperatingHoursRow).where(OperatingHoursRow.organization_id == organization_id)
    if service_id is None:
        query = query.where(OperatingHoursRow.service_id.is_(None))
    else:
        query = query.where(
            or_(
                OperatingHoursRow.service_id == service_id,
                OperatingHoursRow.service_id.is_(None),
            )
        )
    rows = db.execute(query).scalars().all()

    # Service-specific row wins over the organization-wide default
    for row in rows:
        if row.service_id is not None:
            return _to_value(row)
    if rows:
        return _to_value(rows[0])
    raise NotFoundError(f"No operating hours configured for organization {organization_id}")


def list_operating_hours(db: Session, organization_id: UUID) -> list[OperatingHours]:
    """List all operating-hours rows of an organization (org-wide row first)."""
    rows = db.execute(
        select(OperatingHoursRow)
        .where(OperatingHoursRow.organization_id == organization_id)
        .order_by(OperatingHoursRow.service_id.is_not(None), OperatingHoursRow.service_id)
    ).scalars().all()
    return [_to_value(row) for row in rows]


def set_operating_hours(
    db: Session,
    organization_id: UUID,
    weekdays: list[int],
    start_time: time,
    end_time: time,
    slot_granularity_minutes: int | None = None,
    service_id: UUID | None = None,
) -> OperatingHours:
    """Create or replace the operating hours of an organization (or one of its services)."""
    if slot_granularity_minutes is None:
        slot_granularity_minutes = settings.DEFAULT_SLOT_GRANULARITY_MINUTES
    validate_hours(weekdays, start_time, end_time, slot_granularity_minutes)

    query = select(OperatingHoursRow).where(OperatingHoursRow.organization_id == organization_id)
    if service_id is None:
        query = query.where(OperatingHoursRow.service_id.is_(None))
    else:
        query = query.where(OperatingHoursRow.service_id == service_id)
    existing = db.execute(query).scalar_one_or_none()

    normalized = sorted(set(weekdays))
    if existing:
        existing.weekdays = normalized
        existing.start_time = start_time
        existing.end_time = end_time
        existing.slot_granularity_minutes = slot_granularity_minutes
        row = existing
    else:
        row = OperatingHoursRow(
            organization_id=organization_id,
            service_id=service_id,
            weekdays=normalized,
            start_time=start_time,
            end_time=end_time,
            slot_granularity_minutes=slot_granularity_minutes,
        )
        db.add(row)

    db.commit()
    db.refresh(row)
    return _to_value(row)
