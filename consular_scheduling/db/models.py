"""SQLAlchemy ORM models for scheduling."""

from __future__ import annotations

import uuid
from datetime import date as calendar_date, datetime, time, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from consular_scheduling.db.base import Base
from consular_scheduling.db.enums import AppointmentStatus, AppointmentType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperatingHours(Base):
    """
    Working window of an organization, optionally narrowed to one service.

    Uses ISO weekday: Monday=0, Sunday=6. Times are wall-clock times in the
    organization timezone. A row with service_id NULL applies to every
    service without its own row.
    """

    __tablename__ = "operating_hours"
    __table_args__ = (
        UniqueConstraint("organization_id", "service_id", name="uq_operating_hours_org_service"),
        Index("idx_operating_hours_org", "organization_id"),
        CheckConstraint("start_time < end_time", name="ck_operating_hours_window"),
        CheckConstraint("slot_granularity_minutes > 0", name="ck_operating_hours_granularity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    service_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # ISO weekdays the window applies to, e.g. [0, 1, 2, 3, 4]
    weekdays: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    slot_granularity_minutes: Mapped[int] = mapped_column(
        Integer, default=30, server_default=text("30"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, onupdate=_utcnow, nullable=False)


class AgentQualification(Base):
    """
    Agent allowed to handle appointments for an organization and country.

    service_id NULL means the agent covers every service of that
    organization/country pair.
    """

    __tablename__ = "agent_qualifications"
    __table_args__ = (
        UniqueConstraint(
            "agent_id", "organization_id", "country_code", "service_id",
            name="uq_agent_qualification",
        ),
        Index("idx_agent_qualifications_lookup", "organization_id", "country_code", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    country_code: Mapped[str] = mapped_column(String(3), nullable=False)
    service_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)


class BookingLock(Base):
    """
    Row-lock target serializing bookings per agent and day.

    lock_key format: "{agent_id}:{YYYY-MM-DD}". Rows are created lazily and
    never deleted; the booking transaction holds SELECT ... FOR UPDATE on them.
    """

    __tablename__ = "booking_locks"

    lock_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)


class Appointment(Base):
    """
    Booked appointment.

    Lifecycle: pending → confirmed → completed/missed/cancelled, or
    rescheduled (terminal, replaced_by_id points at the replacement).
    Never hard-deleted.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_agent_start", "agent_id", "start_time"),
        Index("idx_appointments_org_date", "organization_id", "date"),
        Index("idx_appointments_org_status", "organization_id", "status"),
        Index("idx_appointments_attendee", "attendee_id"),
        CheckConstraint("start_time < end_time", name="ck_appointments_window"),
        CheckConstraint("duration_minutes > 0", name="ck_appointments_duration"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    country_code: Mapped[str] = mapped_column(String(3), nullable=False)
    service_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    request_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    attendee_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    agent_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Scheduling (stored in UTC, date is the organization-local calendar day)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False)
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    type: Mapped[str] = mapped_column(
        String(30), default=AppointmentType.OTHER.value, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=AppointmentStatus.PENDING.value,
        server_default=text(f"'{AppointmentStatus.PENDING.value}'"),
        nullable=False,
    )
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reschedule linkage
    replaced_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    rescheduled_from_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )

    # Cancellation tracking
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, nullable=False)

    @property
    def status_enum(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)
