"""Enum definitions for scheduling constants."""

from enum import Enum


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → confirmed → completed
              ↘ cancelled  ↘ missed
                           ↘ rescheduled (replaced by a new appointment)
    """

    PENDING = "pending"  # Booked, agent not confirmed yet
    CONFIRMED = "confirmed"  # Agent assigned, slot held
    RESCHEDULED = "rescheduled"  # Superseded by a replacement appointment
    COMPLETED = "completed"  # Appointment took place
    MISSED = "missed"  # Attendee didn't show up
    CANCELLED = "cancelled"  # Cancelled by attendee or staff


class AppointmentType(str, Enum):
    """Kind of consular appointment."""

    DOCUMENT_SUBMISSION = "document_submission"
    DOCUMENT_COLLECTION = "document_collection"
    INTERVIEW = "interview"
    MARRIAGE_CEREMONY = "marriage_ceremony"
    EMERGENCY = "emergency"
    CONSULTATION = "consultation"
    OTHER = "other"


class TransitionAction(str, Enum):
    """Actions accepted by the appointment state machine."""

    CONFIRM = "confirm"
    COMPLETE = "complete"
    MISS = "miss"
    CANCEL = "cancel"
    SUPERSEDE = "supersede"


# Statuses that never block a slot
NON_BLOCKING_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED})
