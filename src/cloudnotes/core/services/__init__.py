"""
Service layer interfaces and implementations.
"""

from .interfaces import IHealthService, INoteService
from .health_service import HealthService
from .note_service import NoteService

__all__ = [
    # Interfaces
    "INoteService",
    "IHealthService",
    # Implementations
    "NoteService",
    "HealthService",
]
