"""Operating hours router - administrative configuration of working windows."""

from datetime import time
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from consular_scheduling.core.deps import get_db
from consular_scheduling.schemas.appointment import OperatingHoursRead, OperatingHoursSet
from consular_scheduling.services import operating_hours_service
from consular_scheduling.services.errors import ValidationError

router = APIRouter()


def _hours_to_read(hours) -> OperatingHoursRead:
    """Convert OperatingHours value to read schema."""
    return OperatingHoursRead(
        organization_id=hours.organization_id,
        service_id=hours.service_id,
        weekdays=sorted(hours.weekdays),
        start_time=hours.start_time,
        end_time=hours.end_time,
        slot_granularity_minutes=hours.slot_granularity_minutes,
    )


def _parse_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid time {value!r}, expected HH:MM")


@router.put("", response_model=OperatingHoursRead)
def set_operating_hours(
    data: OperatingHoursSet,
    db: Session = Depends(get_db),
):
    """Create or replace operating hours of an organization (or one service)."""
    try:
        hours = operating_hours_service.set_operating_hours(
            db=db,
            organization_id=data.organization_id,
            weekdays=data.weekdays,
            start_time=_parse_time(data.start_time),
            end_time=_parse_time(data.end_time),
            slot_granularity_minutes=data.slot_granularity_minutes,
            service_id=data.service_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _hours_to_read(hours)


@router.get("/{organization_id}", response_model=list[OperatingHoursRead])
def list_operating_hours(
    organization_id: UUID,
    db: Session = Depends(get_db),
):
    """List operating hours of an organization (organization-wide row first)."""
    hours = operating_hours_service.list_operating_hours(db, organization_id)
    if not hours:
        raise HTTPException(status_code=404, detail="No operating hours configured")
    return [_hours_to_read(h) for h in hours]
