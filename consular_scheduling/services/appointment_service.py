"""Appointment service - availability, booking, transitions and rescheduling.

Functions here raise the SchedulingError taxonomy; scheduling_service wraps
them into Outcome values for callers outside the core.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from consular_scheduling.core.clock import Clock, resolve_clock
from consular_scheduling.core.structured_logging import build_log_context
from consular_scheduling.db.enums import (
    NON_BLOCKING_STATUSES,
    AppointmentStatus,
    AppointmentType,
    TransitionAction,
)
from consular_scheduling.db.models import Appointment
from consular_scheduling.services.agent_service import (
    AgentDirectory,
    agent_day_appointments,
    available_agents,
    free_agents,
    resolve_directory,
)
from consular_scheduling.services.appointment_state import (
    RESCHEDULABLE_STATUSES,
    StatusAction,
    check_replacement,
    next_status,
    transition_changes,
)
from consular_scheduling.services.appointment_store import (
    AppointmentFilter,
    find_appointments,
    get_appointment,
    insert_appointment,
    update_appointment_status,
)
from consular_scheduling.services.booking_locks import (
    appointment_lock_key,
    booking_transaction,
    lock_key,
)
from consular_scheduling.services.errors import (
    InvalidTransitionError,
    NoAgentAvailableError,
    SlotUnavailableError,
    ValidationError,
)
from consular_scheduling.services.operating_hours_service import get_hours
from consular_scheduling.services.slot_service import (
    TimeSlot,
    generate_slots,
    has_conflict,
    validate_slot,
)
from consular_scheduling.utils.datetime_helpers import day_bounds, local_date

logger = logging.getLogger(__name__)

# Longest date range accepted by the multi-day availability query
MAX_AVAILABILITY_RANGE_DAYS = 62


@dataclass(frozen=True)
class SlotAvailability:
    """A candidate slot and the agents free for it (ascending id)."""

    slot: TimeSlot
    available_agents: tuple[UUID, ...]


# =============================================================================
# Availability
# =============================================================================

def get_availability(
    db: Session,
    organization_id: UUID,
    day: date,
    duration_minutes: int,
    clock: Clock | None = None,
) -> list[TimeSlot]:
    """
    Coarse organization availability for one day, ignoring agent identity.

    A slot is dropped when it starts before "now" or when any blocking
    appointment of the organization overlaps it.
    """
    now = resolve_clock(clock).now()
    hours = get_hours(db, organization_id)
    slots = generate_slots(day, duration_minutes, hours)
    if not slots:
        return []

    day_start, day_end = day_bounds(day)
    existing = find_appointments(
        db,
        AppointmentFilter(
            organization_id=organization_id,
            exclude_statuses=NON_BLOCKING_STATUSES,
            overlaps_start=day_start,
            overlaps_end=day_end,
        ),
    )
    return [slot for slot in slots if slot.start >= now and not has_conflict(slot, existing)]


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
) -> list[SlotAvailability]:
    """
    Staffed slots across an inclusive date range.

    Each slot lists the qualified agents free for it; slots nobody can
    staff are omitted.
    """
    if range_end < range_start:
        raise ValidationError("range_end must not be before range_start")
    if (range_end - range_start).days >= MAX_AVAILABILITY_RANGE_DAYS:
        raise ValidationError(f"Date range cannot exceed {MAX_AVAILABILITY_RANGE_DAYS} days")

    now = resolve_clock(clock).now()
    hours = get_hours(db, organization_id, service_id)
    agents = sorted(
        resolve_directory(directory).qualified_agents(db, organization_id, country_code, service_id)
    )
    if not agents:
        return []

    results: list[SlotAvailability] = []
    day = range_start
    while day <= range_end:
        slots = [s for s in generate_slots(day, duration_minutes, hours) if s.start >= now]
        if slots:
            schedules = {agent: agent_day_appointments(db, agent, day) for agent in agents}
            for slot in slots:
                free = free_agents(slot, agents, schedules)
                if free:
                    results.append(SlotAvailability(slot=slot, available_agents=tuple(free)))
        day += timedelta(days=1)
    return results


# =============================================================================
# Booking
# =============================================================================

def _check_on_grid(
    db: Session,
    organization_id: UUID,
    service_id: UUID | None,
    slot: TimeSlot,
) -> date:
    """Raise ValidationError unless the slot is one the generator would produce."""
    day = local_date(slot.start)
    hours = get_hours(db, organization_id, service_id)
    if not hours.is_open_on(day.weekday()):
        raise ValidationError(f"Organization is closed on {day.strftime('%A')}")
    if (slot.end - slot.start) % timedelta(minutes=1):
        raise ValidationError("Slot duration must be a whole number of minutes")
    if slot not in generate_slots(day, slot.duration_minutes, hours):
        raise ValidationError("Slot is outside operating hours or off the slot grid")
    return day


def _validate_new_slot(
    db: Session,
    organization_id: UUID,
    service_id: UUID | None,
    slot: TimeSlot,
    now: datetime,
) -> date:
    validate_slot(slot)
    if slot.start < now:
        raise ValidationError("Appointment cannot be scheduled in the past")
    return _check_on_grid(db, organization_id, service_id, slot)


def _pick_agent(
    db: Session,
    slot: TimeSlot,
    organization_id: UUID,
    country_code: str,
    service_id: UUID | None,
    preferred_agent_id: UUID | None,
    directory: AgentDirectory | None,
    exclude_appointment_id: UUID | None = None,
) -> UUID:
    """
    Choose the candidate agent for a slot.

    A preferred agent only has to be qualified here; whether they are free
    is decided by the conflict re-check under the booking lock.
    """
    if preferred_agent_id is not None:
        qualified = resolve_directory(directory).qualified_agents(
            db, organization_id, country_code, service_id
        )
        if preferred_agent_id not in qualified:
            raise NoAgentAvailableError(
                f"Agent {preferred_agent_id} is not qualified for this service"
            )
        return preferred_agent_id

    candidates = available_agents(
        db,
        slot,
        organization_id,
        country_code,
        service_id,
        directory=directory,
        exclude_appointment_id=exclude_appointment_id,
    )
    if not candidates:
        raise NoAgentAvailableError("No agent is available for this time, the day is fully booked")
    return candidates[0]


def _ensure_agent_free(
    db: Session,
    agent_id: UUID,
    slot: TimeSlot,
    exclude_appointment_id: UUID | None = None,
) -> None:
    """Conflict re-check against the current store; call with the agent/day lock held."""
    existing = agent_day_appointments(db, agent_id, local_date(slot.start), exclude_appointment_id)
    if has_conflict(slot, existing):
        raise SlotUnavailableError(
            "Selected time is no longer available, please choose another slot"
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
) -> Appointment:
    """
    Book a slot and return the committed appointment.

    The slot is re-validated against the slot grid and re-checked for
    conflicts under the agent/day lock; the caller's view of availability
    is never trusted. With ``defer_agent`` the appointment is stored PENDING
    without an agent. No notification is sent here.
    """
    now = resolve_clock(clock).now()
    country_code = country_code.upper()
    day = _validate_new_slot(db, organization_id, service_id, slot, now)

    data = dict(
        organization_id=organization_id,
        country_code=country_code,
        service_id=service_id,
        request_id=request_id,
        attendee_id=attendee_id,
        date=day,
        start_time=slot.start,
        end_time=slot.end,
        duration_minutes=slot.duration_minutes,
        type=AppointmentType(type).value,
        instructions=instructions,
        created_at=now,
        updated_at=now,
    )

    if defer_agent:
        with booking_transaction(db, []):
            appointment = insert_appointment(db, status=AppointmentStatus.PENDING, agent_id=None, **data)
    else:
        agent_id = _pick_agent(
            db, slot, organization_id, country_code, service_id, preferred_agent_id, directory
        )
        with booking_transaction(db, [lock_key(agent_id, day)]):
            _ensure_agent_free(db, agent_id, slot)
            appointment = insert_appointment(
                db, status=AppointmentStatus.CONFIRMED, agent_id=agent_id, **data
            )

    db.refresh(appointment)
    logger.info(
        f"Booked appointment {appointment.id} ({appointment.status}) at {slot.start.isoformat()}",
        extra=build_log_context(
            org_id=organization_id,
            agent_id=appointment.agent_id,
            appointment_id=appointment.id,
            action="book",
        ),
    )
    return appointment


# =============================================================================
# Status transitions
# =============================================================================

def transition(
    db: Session,
    appointment_id: UUID,
    action: StatusAction,
    clock: Clock | None = None,
    directory: AgentDirectory | None = None,
) -> Appointment:
    """
    Apply a state-machine action and return the committed appointment.

    Every action holds the appointment lock, so concurrent status changes
    and reschedules of one appointment are serialized. Confirming with a
    (new) agent also takes that agent's day lock and checks the agent is
    qualified and free. Supersede requires a live replacement of the same
    attendee (see check_replacement).
    """
    now = resolve_clock(clock).now()
    appointment = get_appointment(db, appointment_id)
    # Fail fast on illegal actions before taking any lock
    next_status(appointment.status_enum, action.action)

    keys = [appointment_lock_key(appointment.id)]
    assign_agent = (
        action.action == TransitionAction.CONFIRM
        and action.agent_id is not None
        and action.agent_id != appointment.agent_id
    )
    if assign_agent:
        qualified = resolve_directory(directory).qualified_agents(
            db, appointment.organization_id, appointment.country_code, appointment.service_id
        )
        if action.agent_id not in qualified:
            raise NoAgentAvailableError(f"Agent {action.agent_id} is not qualified for this service")
        keys.append(lock_key(action.agent_id, appointment.date))
    if action.action == TransitionAction.SUPERSEDE and action.replacement_id is not None:
        keys.append(appointment_lock_key(action.replacement_id))

    with booking_transaction(db, keys):
        appointment = get_appointment(db, appointment_id, for_update=True)
        current = appointment.status_enum
        if assign_agent:
            _ensure_agent_free(
                db,
                action.agent_id,
                TimeSlot(appointment.start_time, appointment.end_time),
                exclude_appointment_id=appointment.id,
            )
        if action.action == TransitionAction.SUPERSEDE and action.replacement_id is not None:
            check_replacement(
                appointment, get_appointment(db, action.replacement_id, for_update=True)
            )
        status, changes = transition_changes(appointment, action, now)
        appointment = update_appointment_status(
            db, appointment.id, status, changes, expected_status=current
        )

    db.refresh(appointment)
    logger.info(
        f"Appointment {appointment.id} {action.action.value} -> {appointment.status}",
        extra=build_log_context(
            org_id=appointment.organization_id,
            agent_id=appointment.agent_id,
            appointment_id=appointment.id,
            action=action.action.value,
        ),
    )
    return appointment


# =============================================================================
# Rescheduling
# =============================================================================

def reschedule(
    db: Session,
    appointment_id: UUID,
    new_date: date,
    new_start: datetime,
    new_end: datetime,
    new_agent_id: UUID | None = None,
    clock: Clock | None = None,
    directory: AgentDirectory | None = None,
) -> Appointment:
    """
    Move an appointment to a new slot; returns the replacement.

    The replacement is booked CONFIRMED and the old appointment is
    superseded (RESCHEDULED, replaced_by_id set) in the same transaction.
    If booking the replacement fails, the old appointment is untouched.
    """
    now = resolve_clock(clock).now()
    existing = get_appointment(db, appointment_id)
    if existing.status_enum not in RESCHEDULABLE_STATUSES:
        raise InvalidTransitionError(existing.status, "reschedule")

    slot = TimeSlot(new_start, new_end)
    validate_slot(slot)
    if local_date(new_start) != new_date:
        raise ValidationError("new_date does not match the date of new_start")
    day = _validate_new_slot(db, existing.organization_id, existing.service_id, slot, now)

    agent_id = _pick_agent(
        db,
        slot,
        existing.organization_id,
        existing.country_code,
        existing.service_id,
        new_agent_id,
        directory,
        exclude_appointment_id=existing.id,
    )

    keys = [appointment_lock_key(existing.id), lock_key(agent_id, day)]
    with booking_transaction(db, keys):
        existing = get_appointment(db, appointment_id, for_update=True)
        current = existing.status_enum
        if current not in RESCHEDULABLE_STATUSES:
            raise InvalidTransitionError(existing.status, "reschedule")
        _ensure_agent_free(db, agent_id, slot, exclude_appointment_id=existing.id)

        replacement = insert_appointment(
            db,
            organization_id=existing.organization_id,
            country_code=existing.country_code,
            service_id=existing.service_id,
            request_id=existing.request_id,
            attendee_id=existing.attendee_id,
            agent_id=agent_id,
            date=day,
            start_time=slot.start,
            end_time=slot.end,
            duration_minutes=slot.duration_minutes,
            type=existing.type,
            status=AppointmentStatus.CONFIRMED,
            instructions=existing.instructions,
            rescheduled_from_id=existing.id,
            created_at=now,
            updated_at=now,
        )
        status, changes = transition_changes(existing, StatusAction.supersede(replacement.id), now)
        update_appointment_status(db, existing.id, status, changes, expected_status=current)

    db.refresh(replacement)
    logger.info(
        f"Rescheduled appointment {appointment_id} -> {replacement.id} at {slot.start.isoformat()}",
        extra=build_log_context(
            org_id=replacement.organization_id,
            agent_id=agent_id,
            appointment_id=replacement.id,
            action="reschedule",
        ),
    )
    return replacement


# =============================================================================
# Listing
# =============================================================================

def list_appointments(db: Session, criteria: AppointmentFilter) -> list[Appointment]:
    """List appointments matching the filter, ordered by start time."""
    return find_appointments(db, criteria)


def group_appointments(
    appointments: list[Appointment],
    now: datetime,
) -> dict[str, list[Appointment]]:
    """
    Split appointments into upcoming, past and cancelled relative to ``now``.

    Superseded (rescheduled) records are history and land in past.
    """
    grouped: dict[str, list[Appointment]] = {"upcoming": [], "past": [], "cancelled": []}
    for appointment in appointments:
        status = appointment.status_enum
        if status == AppointmentStatus.CANCELLED:
            grouped["cancelled"].append(appointment)
        elif status == AppointmentStatus.RESCHEDULED or appointment.start_time < now:
            grouped["past"].append(appointment)
        else:
            grouped["upcoming"].append(appointment)
    return grouped
