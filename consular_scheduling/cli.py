"""CLI tools for scheduling administration."""

from datetime import date, time
from uuid import UUID

import click

from consular_scheduling.core.clock import SystemClock
from consular_scheduling.db.base import Base
from consular_scheduling.db import models  # noqa: F401 - registers tables on Base.metadata
from consular_scheduling.db.session import SessionLocal, engine
from consular_scheduling.services import agent_service, appointment_service, operating_hours_service
from consular_scheduling.services.errors import SchedulingError
from consular_scheduling.utils.datetime_helpers import get_timezone

WEEKDAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _parse_weekdays(value: str) -> list[int]:
    """Parse "mon,tue,wed" or "0,1,2" into ISO weekday numbers (Monday=0)."""
    weekdays = []
    for part in value.split(","):
        part = part.strip().lower()
        if not part:
            continue
        if part.isdigit():
            weekdays.append(int(part))
        elif part[:3] in WEEKDAY_NAMES:
            weekdays.append(WEEKDAY_NAMES.index(part[:3]))
        else:
            raise click.BadParameter(f"Unknown weekday {part!r}")
    return weekdays


def _parse_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Invalid time {value!r}, expected HH:MM")


@click.group()
def cli():
    """Consular scheduling CLI tools."""
    pass


@cli.command()
def init_db():
    """
    Create all scheduling tables on the configured database.

    Intended for local development; deployed databases use alembic.
    """
    Base.metadata.create_all(bind=engine)
    click.echo(f"✓ Created tables: {', '.join(sorted(Base.metadata.tables))}")


@cli.command()
@click.option("--org-id", required=True, type=click.UUID, help="Organization ID")
@click.option("--weekdays", default="mon,tue,wed,thu,fri", show_default=True, help="Open weekdays")
@click.option("--start", "start_time", required=True, help="Opening time (HH:MM)")
@click.option("--end", "end_time", required=True, help="Closing time (HH:MM)")
@click.option("--granularity", default=None, type=int, help="Slot granularity in minutes")
@click.option("--service-id", default=None, type=click.UUID, help="Restrict to one service")
def set_hours(
    org_id: UUID,
    weekdays: str,
    start_time: str,
    end_time: str,
    granularity: int | None,
    service_id: UUID | None,
):
    """
    Set operating hours of an organization (or one of its services).

    Example:
        consular-scheduling set-hours --org-id <uuid> --start 09:00 --end 17:00
    """
    db = SessionLocal()
    try:
        hours = operating_hours_service.set_operating_hours(
            db,
            organization_id=org_id,
            weekdays=_parse_weekdays(weekdays),
            start_time=_parse_time(start_time),
            end_time=_parse_time(end_time),
            slot_granularity_minutes=granularity,
            service_id=service_id,
        )
        days = ",".join(WEEKDAY_NAMES[d] for d in sorted(hours.weekdays))
        click.echo(
            f"✓ Operating hours for {org_id}: {days} "
            f"{hours.start_time:%H:%M}-{hours.end_time:%H:%M} "
            f"every {hours.slot_granularity_minutes} min"
        )
    except SchedulingError as e:
        db.rollback()
        raise click.ClickException(f"❌ {e.message}")
    finally:
        db.close()


@cli.command()
@click.option("--agent-id", required=True, type=click.UUID, help="Agent ID")
@click.option("--org-id", required=True, type=click.UUID, help="Organization ID")
@click.option("--country", required=True, help="Country code (ISO alpha-2/3)")
@click.option("--service-id", default=None, type=click.UUID, help="Restrict to one service")
def add_agent(agent_id: UUID, org_id: UUID, country: str, service_id: UUID | None):
    """Qualify an agent for an organization/country (optionally one service)."""
    db = SessionLocal()
    try:
        qualification = agent_service.add_agent_qualification(
            db,
            agent_id=agent_id,
            organization_id=org_id,
            country_code=country,
            service_id=service_id,
        )
        scope = f"service {service_id}" if service_id else "all services"
        click.echo(
            f"✓ Agent {agent_id} qualified for {qualification.country_code} at {org_id} ({scope})"
        )
    finally:
        db.close()


@cli.command()
@click.option("--org-id", required=True, type=click.UUID, help="Organization ID")
@click.option("--day", required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help="Day (YYYY-MM-DD)")
@click.option("--duration", default=30, show_default=True, help="Duration in minutes")
def availability(org_id: UUID, day, duration: int):
    """Print open slots of an organization for one day."""
    db = SessionLocal()
    try:
        target: date = day.date()
        slots = appointment_service.get_availability(db, org_id, target, duration, clock=SystemClock())
        tz = get_timezone()
        if not slots:
            click.echo(f"No open slots on {target.isoformat()}")
            return
        for slot in slots:
            click.echo(
                f"{slot.start.astimezone(tz):%H:%M}-{slot.end.astimezone(tz):%H:%M}"
            )
    except SchedulingError as e:
        raise click.ClickException(f"❌ {e.message}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
