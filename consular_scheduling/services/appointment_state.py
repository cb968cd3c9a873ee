"""Appointment status state machine.

The transition table is the single source of truth for which actions are
legal from which status. Functions here are pure: they never touch the
session, and "now" is always passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from consular_scheduling.db.enums import AppointmentStatus, TransitionAction
from consular_scheduling.db.models import Appointment
from consular_scheduling.services.errors import InvalidTransitionError, ValidationError


TRANSITIONS: dict[AppointmentStatus, dict[TransitionAction, AppointmentStatus]] = {
    AppointmentStatus.PENDING: {
        TransitionAction.CONFIRM: AppointmentStatus.CONFIRMED,
        TransitionAction.CANCEL: AppointmentStatus.CANCELLED,
        TransitionAction.SUPERSEDE: AppointmentStatus.RESCHEDULED,
    },
    AppointmentStatus.CONFIRMED: {
        TransitionAction.COMPLETE: AppointmentStatus.COMPLETED,
        TransitionAction.MISS: AppointmentStatus.MISSED,
        TransitionAction.CANCEL: AppointmentStatus.CANCELLED,
        TransitionAction.SUPERSEDE: AppointmentStatus.RESCHEDULED,
    },
}

TERMINAL_STATUSES = frozenset(
    status for status in AppointmentStatus if status not in TRANSITIONS
)

# Statuses that may still be rescheduled
RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


@dataclass(frozen=True)
class StatusAction:
    """An action plus the data some actions carry."""

    action: TransitionAction
    agent_id: UUID | None = None  # confirm: agent to assign
    replacement_id: UUID | None = None  # supersede: the new appointment
    reason: str | None = None  # cancel: optional reason

    @classmethod
    def confirm(cls, agent_id: UUID | None = None) -> "StatusAction":
        return cls(TransitionAction.CONFIRM, agent_id=agent_id)

    @classmethod
    def complete(cls) -> "StatusAction":
        return cls(TransitionAction.COMPLETE)

    @classmethod
    def miss(cls) -> "StatusAction":
        return cls(TransitionAction.MISS)

    @classmethod
    def cancel(cls, reason: str | None = None) -> "StatusAction":
        return cls(TransitionAction.CANCEL, reason=reason)

    @classmethod
    def supersede(cls, replacement_id: UUID) -> "StatusAction":
        return cls(TransitionAction.SUPERSEDE, replacement_id=replacement_id)


def allowed_actions(current: AppointmentStatus) -> list[TransitionAction]:
    return list(TRANSITIONS.get(current, {}))


def next_status(current: AppointmentStatus, action: TransitionAction) -> AppointmentStatus:
    """
    Resolve the status an action leads to.

    Raises:
        InvalidTransitionError: the action is not legal from ``current``
    """
    target = TRANSITIONS.get(current, {}).get(action)
    if target is None:
        raise InvalidTransitionError(current.value, action.value)
    return target


def transition_changes(
    appointment: Appointment,
    action: StatusAction,
    now: datetime,
) -> tuple[AppointmentStatus, dict[str, Any]]:
    """Target status and the field changes that accompany it."""
    status = next_status(appointment.status_enum, action.action)
    changes: dict[str, Any] = {"updated_at": now}

    if action.action == TransitionAction.CONFIRM:
        agent_id = action.agent_id or appointment.agent_id
        if agent_id is None:
            raise ValidationError("An agent is required to confirm this appointment")
        changes["agent_id"] = agent_id
    elif action.action == TransitionAction.CANCEL:
        changes["cancelled_at"] = now
        changes["cancellation_reason"] = action.reason
    elif action.action == TransitionAction.SUPERSEDE:
        if action.replacement_id is None:
            raise ValidationError("A replacement appointment is required")
        changes["replaced_by_id"] = action.replacement_id

    return status, changes


def apply_transition(appointment: Appointment, action: StatusAction, now: datetime) -> AppointmentStatus:
    """Apply an action to an in-memory appointment and return its new status."""
    status, changes = transition_changes(appointment, action, now)
    for name, value in changes.items():
        setattr(appointment, name, value)
    appointment.status = status.value
    return status


def check_replacement(appointment: Appointment, replacement: Appointment) -> None:
    """
    Raise ValidationError unless ``replacement`` may supersede ``appointment``.

    The replacement is a different, still-live appointment (PENDING or
    CONFIRMED) of the same attendee and organization, and if it records
    where it was rescheduled from, that is ``appointment``.
    """
    if replacement.id == appointment.id:
        raise ValidationError("An appointment cannot replace itself")
    if replacement.status_enum not in RESCHEDULABLE_STATUSES:
        raise ValidationError(
            f"Replacement appointment must be pending or confirmed, not {replacement.status}"
        )
    if (
        replacement.attendee_id != appointment.attendee_id
        or replacement.organization_id != appointment.organization_id
    ):
        raise ValidationError("Replacement appointment belongs to another attendee or organization")
    if replacement.rescheduled_from_id not in (None, appointment.id):
        raise ValidationError("Replacement appointment was rescheduled from another appointment")
