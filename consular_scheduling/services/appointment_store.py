"""Appointment record store - the narrow persistence interface of the scheduling core.

One filter object and one query builder replace per-filter query variants.
Writes here only flush; committing is owned by the booking transaction or
the state machine caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import Select, select, update
from sqlalchemy.orm import Session

from consular_scheduling.db.enums import AppointmentStatus
from consular_scheduling.db.models import Appointment
from consular_scheduling.services.errors import ConcurrencyConflictError, NotFoundError, ValidationError


@dataclass
class AppointmentFilter:
    """Optional criteria for appointment lookups; unset fields do not filter."""
    organization_id: UUID | None = None
    agent_id: UUID | None = None
    attendee_id: UUID | None = None
    service_id: UUID | None = None
    request_id: UUID | None = None
    country_code: str | None = None
    statuses: Iterable[AppointmentStatus] | None = None
    exclude_statuses: Iterable[AppointmentStatus] | None = None
    # Window overlap (half-open): start_time < overlaps_end AND end_time > overlaps_start
    overlaps_start: datetime | None = None
    overlaps_end: datetime | None = None
    starts_after: datetime | None = None
    starts_before: datetime | None = None
    exclude_ids: set[UUID] = field(default_factory=set)
    limit: int | None = None
    offset: int = 0


def build_appointment_query(criteria: AppointmentFilter) -> Select:
    """Translate a filter into a single SELECT ordered by start time."""
    query = select(Appointment)

    equality = [
        (Appointment.organization_id, criteria.organization_id),
        (Appointment.agent_id, criteria.agent_id),
        (Appointment.attendee_id, criteria.attendee_id),
        (Appointment.service_id, criteria.service_id),
        (Appointment.request_id, criteria.request_id),
        (Appointment.country_code, criteria.country_code),
    ]
    for column, value in equality:
        if value is not None:
            query = query.where(column == value)

    if criteria.statuses is not None:
        query = query.where(Appointment.status.in_([s.value for s in criteria.statuses]))
    if criteria.exclude_statuses:
        query = query.where(Appointment.status.not_in([s.value for s in criteria.exclude_statuses]))

    if criteria.overlaps_end is not None:
        query = query.where(Appointment.start_time < criteria.overlaps_end)
    if criteria.overlaps_start is not None:
        query = query.where(Appointment.end_time > criteria.overlaps_start)
    if criteria.starts_after is not None:
        query = query.where(Appointment.start_time >= criteria.starts_after)
    if criteria.starts_before is not None:
        query = query.where(Appointment.start_time < criteria.starts_before)

    if criteria.exclude_ids:
        query = query.where(Appointment.id.not_in(list(criteria.exclude_ids)))

    query = query.order_by(Appointment.start_time, Appointment.id)
    if criteria.offset:
        query = query.offset(criteria.offset)
    if criteria.limit is not None:
        query = query.limit(criteria.limit)
    return query


def find_appointments(db: Session, criteria: AppointmentFilter) -> list[Appointment]:
    """Find appointments matching the filter."""
    return list(db.execute(build_appointment_query(criteria)).scalars().all())


def get_appointment(db: Session, appointment_id: UUID, for_update: bool = False) -> Appointment:
    """
    Get appointment by ID.

    Raises:
        NotFoundError: no appointment with this ID
    """
    query = select(Appointment).where(Appointment.id == appointment_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    appointment = db.execute(query).scalar_one_or_none()
    if appointment is None:
        raise NotFoundError(f"Appointment {appointment_id} not found")
    return appointment


def check_appointment_invariants(
    start_time: datetime,
    end_time: datetime,
    duration_minutes: int,
    status: AppointmentStatus,
    agent_id: UUID | None,
) -> None:
    """Raise ValidationError unless the record satisfies the write invariants."""
    if start_time >= end_time:
        raise ValidationError("Start time must be before end time")
    if end_time - start_time != timedelta(minutes=duration_minutes):
        raise ValidationError("Duration must match the appointment window")
    if status == AppointmentStatus.CONFIRMED and agent_id is None:
        raise ValidationError("A confirmed appointment requires an agent")


def insert_appointment(db: Session, **data: Any) -> Appointment:
    """Validate and add a new appointment; flushed, not committed."""
    status = AppointmentStatus(data.get("status", AppointmentStatus.PENDING))
    check_appointment_invariants(
        data["start_time"], data["end_time"], data["duration_minutes"], status, data.get("agent_id")
    )
    data["status"] = status.value
    appointment = Appointment(**data)
    db.add(appointment)
    db.flush()
    return appointment


def update_appointment_status(
    db: Session,
    appointment_id: UUID,
    status: AppointmentStatus,
    changes: dict[str, Any] | None = None,
    expected_status: AppointmentStatus | None = None,
) -> Appointment:
    """
    Set a new status (plus transition side fields); flushed, not committed.

    With ``expected_status`` the write is a compare-and-set: it only applies
    while the stored status still equals it.

    Raises:
        NotFoundError: no appointment with this ID
        ConcurrencyConflictError: the stored status is no longer ``expected_status``
    """
    appointment = get_appointment(db, appointment_id)
    values = dict(changes or {})
    values["status"] = status.value
    check_appointment_invariants(
        appointment.start_time,
        appointment.end_time,
        appointment.duration_minutes,
        status,
        values.get("agent_id", appointment.agent_id),
    )

    query = update(Appointment).where(Appointment.id == appointment_id)
    if expected_status is not None:
        query = query.where(Appointment.status == expected_status.value)
    result = db.execute(query.values(**values))
    if result.rowcount == 0:
        raise ConcurrencyConflictError(
            f"Appointment {appointment_id} was changed by another request, reload and retry"
        )
    db.refresh(appointment)
    return appointment
