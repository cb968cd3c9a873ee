"""FastAPI application entry point."""

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from consular_scheduling.core.config import settings
from consular_scheduling.core.deps import get_db
from consular_scheduling.core.structured_logging import configure_logging

configure_logging(settings.LOG_LEVEL)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Consular Scheduling API",
    description="Appointment scheduling core for consular services",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# ============================================================================
# Routers
# ============================================================================

from consular_scheduling.routers import appointments_router, operating_hours_router

app.include_router(appointments_router, prefix="/appointments", tags=["appointments"])
app.include_router(operating_hours_router, prefix="/operating-hours", tags=["operating-hours"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    db.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
