"""Appointment schemas - Pydantic models for the scheduling API."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field

from consular_scheduling.db.enums import AppointmentType


# =============================================================================
# Operating Hours
# =============================================================================

class OperatingHoursSet(BaseModel):
    """Schema for setting an organization's (or service's) operating hours."""
    organization_id: UUID
    service_id: UUID | None = None
    weekdays: list[int] = Field(..., min_length=1, description="Monday=0, Sunday=6")
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="HH:MM format")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="HH:MM format")
    slot_granularity_minutes: int | None = Field(None, ge=5, le=480)


class OperatingHoursRead(BaseModel):
    """Schema for reading operating hours."""
    organization_id: UUID
    service_id: UUID | None
    weekdays: list[int]
    start_time: time
    end_time: time
    slot_granularity_minutes: int


# =============================================================================
# Time Slots
# =============================================================================

class TimeSlotRead(BaseModel):
    """Schema for an available time slot."""
    start: datetime
    end: datetime


class SlotAvailabilityRead(BaseModel):
    """Schema for a staffed slot with its free agents."""
    start: datetime
    end: datetime
    available_agents: list[UUID]


# =============================================================================
# Appointments
# =============================================================================

class AppointmentBook(BaseModel):
    """Schema for booking an appointment."""
    organization_id: UUID
    country_code: str = Field(..., min_length=2, max_length=3)
    attendee_id: UUID
    start: datetime
    end: datetime
    type: AppointmentType = AppointmentType.OTHER
    service_id: UUID | None = None
    request_id: UUID | None = None
    preferred_agent_id: UUID | None = None
    instructions: str | None = Field(None, max_length=2000)
    defer_agent: bool = False


class AppointmentReschedule(BaseModel):
    """Schema for rescheduling an appointment."""
    new_date: date
    new_start: datetime
    new_end: datetime
    new_agent_id: UUID | None = None


class AppointmentConfirm(BaseModel):
    """Schema for confirming a pending appointment."""
    agent_id: UUID | None = None


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""
    reason: str | None = Field(None, max_length=1000)


class AppointmentRead(BaseModel):
    """Schema for reading an appointment."""
    id: UUID
    organization_id: UUID
    country_code: str
    service_id: UUID | None
    request_id: UUID | None
    attendee_id: UUID
    agent_id: UUID | None
    date: date
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    type: str
    status: str
    instructions: str | None
    replaced_by_id: UUID | None
    rescheduled_from_id: UUID | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""
    items: list[AppointmentRead]
    upcoming: list[UUID]
    past: list[UUID]
    cancelled: list[UUID]
    limit: int
    offset: int
