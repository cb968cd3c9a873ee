"""FastAPI dependencies for database access and scheduling collaborators."""

from typing import Generator

from sqlalchemy.orm import Session

from consular_scheduling.core.clock import Clock, SystemClock
from consular_scheduling.db.session import SessionLocal
from consular_scheduling.services.agent_service import AgentDirectory, QualificationAgentDirectory
from consular_scheduling.services.notification_dispatch import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return SystemClock()


def get_agent_directory() -> AgentDirectory:
    return QualificationAgentDirectory()


def get_notification_dispatcher() -> NotificationDispatcher:
    return LoggingNotificationDispatcher()
