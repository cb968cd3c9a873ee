"""Notification dispatch hook.

The scheduling core never notifies anyone itself; the HTTP layer calls
``notify`` after a mutation has committed. Delivery (email, SMS, in-app)
lives outside this service, behind the NotificationDispatcher protocol.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from consular_scheduling.core.structured_logging import build_log_context
from consular_scheduling.db.models import Appointment

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    BOOKED = "booked"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    MISSED = "missed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class NotificationDispatcher(Protocol):
    def dispatch(self, kind: NotificationKind, appointment: Appointment) -> None: ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records the event in the application log."""

    def dispatch(self, kind: NotificationKind, appointment: Appointment) -> None:
        logger.info(
            f"Appointment notification {kind.value} for {appointment.id}",
            extra=build_log_context(
                org_id=appointment.organization_id,
                agent_id=appointment.agent_id,
                appointment_id=appointment.id,
                action=kind.value,
            ),
        )


def notify(
    dispatcher: NotificationDispatcher,
    kind: NotificationKind,
    appointment: Appointment,
) -> None:
    """Fire-and-forget: a failing dispatcher never undoes a committed change."""
    try:
        dispatcher.dispatch(kind, appointment)
    except Exception:
        logger.exception(f"Notification dispatch failed for {kind.value} {appointment.id}")
