"""Agent availability resolution.

The set of qualified agents comes from an external lookup (AgentDirectory);
the default directory reads the agent_qualifications table.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Protocol
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from consular_scheduling.db.enums import NON_BLOCKING_STATUSES
from consular_scheduling.db.models import AgentQualification, Appointment
from consular_scheduling.services.appointment_store import AppointmentFilter, find_appointments
from consular_scheduling.services.slot_service import TimeSlot, has_conflict
from consular_scheduling.utils.datetime_helpers import day_bounds, local_date

logger = logging.getLogger(__name__)


class AgentDirectory(Protocol):
    """Agent qualification lookup collaborator."""

    def qualified_agents(
        self,
        db: Session,
        organization_id: UUID,
        country_code: str,
        service_id: UUID | None,
    ) -> list[UUID]: ...


class QualificationAgentDirectory:
    """Agents from active agent_qualifications rows, ascending by id."""

    def qualified_agents(
        self,
        db: Session,
        organization_id: UUID,
        country_code: str,
        service_id: UUID | None,
    ) -> list[UUID]:
        query = select(AgentQualification.agent_id).where(
            AgentQualification.organization_id == organization_id,
            AgentQualification.country_code == country_code.upper(),
            AgentQualification.is_active.is_(True),
        )
        if service_id is not None:
            query = query.where(
                or_(
                    AgentQualification.service_id == service_id,
                    AgentQualification.service_id.is_(None),
                )
            )
        else:
            query = query.where(AgentQualification.service_id.is_(None))
        return sorted(set(db.execute(query).scalars().all()))


def resolve_directory(directory: AgentDirectory | None) -> AgentDirectory:
    return directory if directory is not None else QualificationAgentDirectory()


def add_agent_qualification(
    db: Session,
    agent_id: UUID,
    organization_id: UUID,
    country_code: str,
    service_id: UUID | None = None,
) -> AgentQualification:
    """Register (or re-activate) an agent for an organization/country/service."""
    country_code = country_code.upper()
    query = select(AgentQualification).where(
        AgentQualification.agent_id == agent_id,
        AgentQualification.organization_id == organization_id,
        AgentQualification.country_code == country_code,
    )
    if service_id is None:
        query = query.where(AgentQualification.service_id.is_(None))
    else:
        query = query.where(AgentQualification.service_id == service_id)
    qualification = db.execute(query).scalar_one_or_none()

    if qualification:
        qualification.is_active = True
    else:
        qualification = AgentQualification(
            agent_id=agent_id,
            organization_id=organization_id,
            country_code=country_code,
            service_id=service_id,
        )
        db.add(qualification)
    db.commit()
    db.refresh(qualification)
    return qualification


def agent_day_appointments(
    db: Session,
    agent_id: UUID,
    day: date,
    exclude_appointment_id: UUID | None = None,
) -> list[Appointment]:
    """Blocking appointments of an agent that overlap a local calendar day."""
    day_start, day_end = day_bounds(day)
    return find_appointments(
        db,
        AppointmentFilter(
            agent_id=agent_id,
            exclude_statuses=NON_BLOCKING_STATUSES,
            overlaps_start=day_start,
            overlaps_end=day_end,
            exclude_ids={exclude_appointment_id} if exclude_appointment_id else set(),
        ),
    )


def free_agents(
    candidate: TimeSlot,
    agents: list[UUID],
    schedules: dict[UUID, list[Appointment]],
) -> list[UUID]:
    """Agents (in given order) whose day schedule has no conflict with the candidate."""
    return [agent for agent in agents if not has_conflict(candidate, schedules.get(agent, []))]


def available_agents(
    db: Session,
    candidate: TimeSlot,
    organization_id: UUID,
    country_code: str,
    service_id: UUID | None,
    directory: AgentDirectory | None = None,
    exclude_appointment_id: UUID | None = None,
) -> list[UUID]:
    """
    Qualified agents with no conflicting appointment for the candidate window.

    Ordered by ascending agent id; the caller normally takes the first one.
    An empty list means "no staffing for this slot", not an error.
    """
    qualified = sorted(
        resolve_directory(directory).qualified_agents(db, organization_id, country_code, service_id)
    )
    if not qualified:
        logger.info(
            f"No qualified agents for org {organization_id} country {country_code} service {service_id}"
        )
        return []

    day = local_date(candidate.start)
    schedules = {
        agent: agent_day_appointments(db, agent, day, exclude_appointment_id)
        for agent in qualified
    }
    return free_agents(candidate, qualified, schedules)
