"""Appointments router - API endpoints for availability, booking and status changes.

Notifications are dispatched here, after the scheduling core has committed.
"""

from datetime import date, time, timedelta
from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from consular_scheduling.core.clock import Clock
from consular_scheduling.core.deps import (
    get_agent_directory,
    get_clock,
    get_db,
    get_notification_dispatcher,
)
from consular_scheduling.db.enums import AppointmentStatus
from consular_scheduling.schemas.appointment import (
    AppointmentBook,
    AppointmentCancel,
    AppointmentConfirm,
    AppointmentListResponse,
    AppointmentRead,
    AppointmentReschedule,
    SlotAvailabilityRead,
    TimeSlotRead,
)
from consular_scheduling.services import appointment_service, scheduling_service
from consular_scheduling.services.agent_service import AgentDirectory
from consular_scheduling.services.appointment_state import StatusAction
from consular_scheduling.services.appointment_store import AppointmentFilter, get_appointment
from consular_scheduling.services.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NoAgentAvailableError,
    NotFoundError,
    Outcome,
    SchedulingError,
    SlotUnavailableError,
    TransientStoreError,
    ValidationError,
)
from consular_scheduling.services.notification_dispatch import (
    NotificationDispatcher,
    NotificationKind,
    notify,
)
from consular_scheduling.services.slot_service import TimeSlot
from consular_scheduling.utils.datetime_helpers import local_datetime

router = APIRouter()

MAX_PAGE_SIZE = 200

ERROR_STATUS_CODES: dict[type[SchedulingError], int] = {
    NotFoundError: 404,
    ValidationError: 422,
    SlotUnavailableError: 409,
    NoAgentAvailableError: 409,
    InvalidTransitionError: 409,
    ConcurrencyConflictError: 503,
    TransientStoreError: 503,
}


# =============================================================================
# Helper Functions
# =============================================================================

def _raise_http(error: SchedulingError) -> NoReturn:
    status_code = next(
        (code for cls, code in ERROR_STATUS_CODES.items() if isinstance(error, cls)),
        400,
    )
    raise HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message, "retriable": error.retriable},
    )


def _unwrap(outcome: Outcome):
    if not outcome.ok:
        _raise_http(outcome.error)
    return outcome.value


def _appointment_to_read(appt) -> AppointmentRead:
    """Convert Appointment model to read schema."""
    return AppointmentRead(
        id=appt.id,
        organization_id=appt.organization_id,
        country_code=appt.country_code,
        service_id=appt.service_id,
        request_id=appt.request_id,
        attendee_id=appt.attendee_id,
        agent_id=appt.agent_id,
        date=appt.date,
        start_time=appt.start_time,
        end_time=appt.end_time,
        duration_minutes=appt.duration_minutes,
        type=appt.type,
        status=appt.status,
        instructions=appt.instructions,
        replaced_by_id=appt.replaced_by_id,
        rescheduled_from_id=appt.rescheduled_from_id,
        cancelled_at=appt.cancelled_at,
        cancellation_reason=appt.cancellation_reason,
        created_at=appt.created_at,
        updated_at=appt.updated_at,
    )


def _transition(
    db: Session,
    appointment_id: UUID,
    action: StatusAction,
    kind: NotificationKind,
    clock: Clock,
    directory: AgentDirectory,
    dispatcher: NotificationDispatcher,
) -> AppointmentRead:
    appt = _unwrap(
        scheduling_service.transition(db, appointment_id, action, clock=clock, directory=directory)
    )
    notify(dispatcher, kind, appt)
    return _appointment_to_read(appt)


# =============================================================================
# Availability
# =============================================================================

@router.get("/availability", response_model=list[TimeSlotRead])
def get_availability(
    organization_id: UUID,
    day: date,
    duration_minutes: int = Query(30, ge=1, le=480),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Open slots of an organization for one day, regardless of agent."""
    slots = _unwrap(
        scheduling_service.get_availability(db, organization_id, day, duration_minutes, clock=clock)
    )
    return [TimeSlotRead(start=s.start, end=s.end) for s in slots]


@router.get("/slots", response_model=list[SlotAvailabilityRead])
def get_available_slots(
    organization_id: UUID,
    country_code: str = Query(..., min_length=2, max_length=3),
    range_start: date = Query(...),
    range_end: date | None = None,
    service_id: UUID | None = None,
    duration_minutes: int = Query(30, ge=1, le=480),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
):
    """Staffed slots across a date range, each with the agents free for it."""
    results = _unwrap(
        scheduling_service.get_available_slots_with_agents(
            db,
            service_id,
            organization_id,
            country_code.upper(),
            range_start,
            range_end or range_start,
            duration_minutes,
            clock=clock,
            directory=directory,
        )
    )
    return [
        SlotAvailabilityRead(
            start=item.slot.start,
            end=item.slot.end,
            available_agents=list(item.available_agents),
        )
        for item in results
    ]


# =============================================================================
# Appointments
# =============================================================================

@router.post("", response_model=AppointmentRead, status_code=201)
def book_appointment(
    data: AppointmentBook,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Book a slot. The slot is re-validated server-side."""
    appt = _unwrap(
        scheduling_service.book(
            db,
            organization_id=data.organization_id,
            country_code=data.country_code,
            attendee_id=data.attendee_id,
            slot=TimeSlot(data.start, data.end),
            type=data.type,
            service_id=data.service_id,
            request_id=data.request_id,
            preferred_agent_id=data.preferred_agent_id,
            instructions=data.instructions,
            defer_agent=data.defer_agent,
            clock=clock,
            directory=directory,
        )
    )
    notify(dispatcher, NotificationKind.BOOKED, appt)
    return _appointment_to_read(appt)


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    organization_id: UUID | None = None,
    agent_id: UUID | None = None,
    attendee_id: UUID | None = None,
    service_id: UUID | None = None,
    request_id: UUID | None = None,
    status: list[AppointmentStatus] | None = Query(None),
    date_start: date | None = None,
    date_end: date | None = None,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """List appointments, grouped into upcoming/past/cancelled by id."""
    criteria = AppointmentFilter(
        organization_id=organization_id,
        agent_id=agent_id,
        attendee_id=attendee_id,
        service_id=service_id,
        request_id=request_id,
        statuses=status,
        starts_after=local_datetime(date_start, time.min) if date_start else None,
        starts_before=(
            local_datetime(date_end + timedelta(days=1), time.min) if date_end else None
        ),
        limit=limit,
        offset=offset,
    )
    appointments = appointment_service.list_appointments(db, criteria)
    grouped = appointment_service.group_appointments(appointments, clock.now())
    return AppointmentListResponse(
        items=[_appointment_to_read(a) for a in appointments],
        upcoming=[a.id for a in grouped["upcoming"]],
        past=[a.id for a in grouped["past"]],
        cancelled=[a.id for a in grouped["cancelled"]],
        limit=limit,
        offset=offset,
    )


@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment_detail(
    appointment_id: UUID,
    db: Session = Depends(get_db),
):
    """Get appointment details."""
    try:
        appt = get_appointment(db, appointment_id)
    except NotFoundError as e:
        _raise_http(e)
    return _appointment_to_read(appt)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentRead)
def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Move an appointment to a new slot; returns the replacement appointment."""
    replacement = _unwrap(
        scheduling_service.reschedule(
            db,
            appointment_id,
            data.new_date,
            data.new_start,
            data.new_end,
            new_agent_id=data.new_agent_id,
            clock=clock,
            directory=directory,
        )
    )
    notify(dispatcher, NotificationKind.RESCHEDULED, replacement)
    return _appointment_to_read(replacement)


@router.post("/{appointment_id}/confirm", response_model=AppointmentRead)
def confirm_appointment(
    appointment_id: UUID,
    data: AppointmentConfirm | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Confirm a pending appointment, optionally assigning the agent."""
    action = StatusAction.confirm(data.agent_id if data else None)
    return _transition(
        db, appointment_id, action, NotificationKind.CONFIRMED, clock, directory, dispatcher
    )


@router.post("/{appointment_id}/complete", response_model=AppointmentRead)
def complete_appointment(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Mark a confirmed appointment as completed."""
    return _transition(
        db,
        appointment_id,
        StatusAction.complete(),
        NotificationKind.COMPLETED,
        clock,
        directory,
        dispatcher,
    )


@router.post("/{appointment_id}/miss", response_model=AppointmentRead)
def miss_appointment(
    appointment_id: UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Mark a confirmed appointment as missed (no-show)."""
    return _transition(
        db,
        appointment_id,
        StatusAction.miss(),
        NotificationKind.MISSED,
        clock,
        directory,
        dispatcher,
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentRead)
def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    directory: AgentDirectory = Depends(get_agent_directory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Cancel a pending or confirmed appointment."""
    action = StatusAction.cancel(data.reason if data else None)
    return _transition(
        db, appointment_id, action, NotificationKind.CANCELLED, clock, directory, dispatcher
    )
