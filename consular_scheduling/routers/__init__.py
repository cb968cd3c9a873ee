"""API routers."""

from consular_scheduling.routers.appointments import router as appointments_router
from consular_scheduling.routers.operating_hours import router as operating_hours_router
