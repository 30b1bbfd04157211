"""API routers for Cloud Notes."""

from .health import router as health_router
from .notes import router as notes_router

__all__ = ["notes_router", "health_router"]
