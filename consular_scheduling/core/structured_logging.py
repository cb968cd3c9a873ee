"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any
from uuid import UUID

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_log_context(
    *,
    org_id: UUID | str | None = None,
    agent_id: UUID | str | None = None,
    appointment_id: UUID | str | None = None,
    request_id: str | None = None,
    action: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never attendee data)."""
    context: dict[str, Any] = {}
    if org_id:
        context["org_id"] = str(org_id)
    if agent_id:
        context["agent_id"] = str(agent_id)
    if appointment_id:
        context["appointment_id"] = str(appointment_id)
    if request_id:
        context["request_id"] = request_id
    if action:
        context["action"] = action
    return context
