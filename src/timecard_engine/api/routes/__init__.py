"""API routes."""

from timecard_engine.api.routes.health import router as health_router
from timecard_engine.api.routes.timecards import router as timecards_router

__all__ = ["health_router", "timecards_router"]
