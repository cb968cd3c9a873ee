"""
Test configuration and fixtures.

Provides:
- A fresh SQLite database file per test (real commits, real threads)
- Fixed clock, organization, operating hours and qualified agents
- HTTPX AsyncClient with dependency overrides
"""
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session, sessionmaker

from consular_scheduling.core.clock import FixedClock
from consular_scheduling.core.deps import get_clock, get_db
from consular_scheduling.db.base import Base
from consular_scheduling.db import models  # noqa: F401
from consular_scheduling.db.session import build_engine
from consular_scheduling.main import app
from consular_scheduling.services.agent_service import add_agent_qualification
from consular_scheduling.services.operating_hours_service import set_operating_hours
from consular_scheduling.services.slot_service import TimeSlot

# Monday; every test day is derived from it
MONDAY = date(2030, 1, 7)
SATURDAY = MONDAY + timedelta(days=5)
COUNTRY = "FR"


def slot_at(day: date, hour: int, minute: int = 0, duration: int = 30) -> TimeSlot:
    """UTC slot helper (the test organization runs on UTC)."""
    start = datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)
    return TimeSlot(start, start + timedelta(minutes=duration))


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduling.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    """Session on the per-test database; service code commits for real."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def clock() -> FixedClock:
    """Early Monday morning, before opening."""
    return FixedClock(datetime.combine(MONDAY, time(6, 0), tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture(scope="function")
def hours(db: Session, org_id: uuid.UUID):
    """Monday to Friday, 09:00-17:00, 30 minute grid."""
    return set_operating_hours(
        db,
        organization_id=org_id,
        weekdays=[0, 1, 2, 3, 4],
        start_time=time(9, 0),
        end_time=time(17, 0),
        slot_granularity_minutes=30,
    )


@pytest.fixture(scope="function")
def agents(db: Session, org_id: uuid.UUID) -> list[uuid.UUID]:
    """Two qualified agents, ascending by id (A1, A2)."""
    agent_ids = sorted([uuid.uuid4(), uuid.uuid4()])
    for agent_id in agent_ids:
        add_agent_qualification(db, agent_id=agent_id, organization_id=org_id, country_code=COUNTRY)
    return agent_ids


@pytest.fixture(scope="function")
def booking(org_id, clock):
    """Common keyword arguments for book()."""
    return {
        "organization_id": org_id,
        "country_code": COUNTRY,
        "attendee_id": uuid.uuid4(),
        "clock": clock,
    }


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient bound to the test database and the fixed clock."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
