"""Public scheduling surface.

Every operation returns an Outcome instead of raising: the value on
success, otherwise the SchedulingError describing why. Callers branch on
the error type (SlotUnavailableError -> re-fetch availability,
ConcurrencyConflictError -> retry with the same inputs, ...).
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from consular_scheduling.core.clock import Clock
from consular_scheduling.db.enums import AppointmentType
from consular_scheduling.db.models import Appointment
from consular_scheduling.services import appointment_service
from consular_scheduling.services.agent_service import AgentDirectory
from consular_scheduling.services.appointment_service import SlotAvailability
from consular_scheduling.services.appointment_state import StatusAction
from consular_scheduling.services.errors import Outcome, SchedulingError
from consular_scheduling.services.slot_service import TimeSlot

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run(operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    try:
        return Outcome.success(func(*args, **kwargs))
    except SchedulingError as exc:
        logger.info(f"{operation} failed: {exc.code}: {exc.message}")
        return Outcome.failure(exc)


def get_availability(
    db: Session,
    organization_id: UUID,
    day: date,
    duration_minutes: int,
    clock: Clock | None = None,
) -> Outcome[list[TimeSlot]]:
    return _run(
        "get_availability",
        appointment_service.get_availability,
        db,
        organization_id,
        day,
        duration_minutes,
        clock=clock,
    )


def get_available_slots_with_agents(
    db: Session,
    service_id: UUID | None,
    organization_id: UUID,
    country_code: str,
    range_start: date,
    range_end: date,
    duration_minutes: int,
    clock: Clock | None = None,
    directory: AgentDirectory | None = None,
) -> Outcome[list[SlotAvailability]]:
    return _run(
        "get_available_slots_with_agents",
        appointment_service.get_available_slots_with_agents,
        db,
        service_id,
        organization_id,
        country_code,
        range_start,
        range_end,
        duration_minutes,
        clock=clock,
        directory=directory,
    )


def book(
    db: Session,
    *,
    organization_id: UUID,
    country_code: str,
    attendee_id: UUID,
    slot: TimeSlot,
    type: AppointmentType = AppointmentType.OTHER,
    service_id: UUID | None = None,
    request_id: UUID | None = None,
    preferred_agent_id: UUID | None = None,
    instructions: str | None = None,
    defer_agent: bool = False,
    clock: Clock | None = None,
    directory: AgentDirectory | None = None,
) -> Outcome[Appointment]:
    return _run(
        "book",
        appointment_service.book,
        db,
        organization_id=organization_id,
        country_code=country_code,
        attendee_id=attendee_id,
        slot=slot,
        type=type,
        service_id=service_id,
        request_id=request_id,
        preferred_agent_id=preferred_agent_id,
        instructions=instructions,
        defer_agent=defer_agent,
        clock=clock,
        directory=directory,
    )


def reschedule(
    db: Session,
    appointment_id: UUID,
    new_date: date,
    new_start: datetime,
    new_end: datetime,
    new_agent_id: UUID | None = None,
    clock: Clock | None = None,
    directory: AgentDirectory | None = None,
) -> Outcome[Appointment]:
    return _run(
        "reschedule",
        appointment_service.reschedule,
        db,
        appointment_id,
        new_date,
        new_start,
        new_end,
        new_agent_id=new_agent_id,
        clock=clock,
        directory=directory,
    )


def transition(
    db: Session,
    appointment_id: UUID,
    action: StatusAction,
    clock: Clock | None = None,
    directory: AgentDirectory | None = None,
) -> Outcome[Appointment]:
    return _run(
        "transition",
        appointment_service.transition,
        db,
        appointment_id,
        action,
        clock=clock,
        directory=directory,
    )
