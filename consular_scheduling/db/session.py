from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from consular_scheduling.core.config import settings


def build_engine(database_url: str):
    """Create an engine with backend-specific connection options."""
    connect_args = {}
    backend = make_url(database_url).get_backend_name()
    if backend.startswith("postgresql"):
        connect_args["options"] = "-c timezone=utc"
    elif backend == "sqlite":
        # SQLite busy wait matches the booking lock timeout
        connect_args["timeout"] = settings.BOOKING_LOCK_TIMEOUT_SECONDS
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
