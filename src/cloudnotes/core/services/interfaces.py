"""
Service interfaces for Cloud Notes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from ..schemas.common import HealthCheckResponse
from ..schemas.notes import NoteCreate, NoteRecord, NoteUpdate


class INoteService(ABC):
    """Note mutations; clients observe the results through the event stream."""

    @abstractmethod
    async def create_note(self, request: NoteCreate) -> NoteRecord:
        """Create new note."""
        pass

    @abstractmethod
    async def get_note(self, note_id: str) -> NoteRecord:
        """Get note by ID."""
        pass

    @abstractmethod
    async def update_note(self, note_id: str, request: NoteUpdate) -> NoteRecord:
        """Replace the text of an existing note."""
        pass

    @abstractmethod
    async def delete_note(self, note_id: str) -> None:
        """Delete note if it exists."""
        pass


class IHealthService(ABC):
    """Health checks for the database, change feed and push layer."""

    @abstractmethod
    async def get_health_status(self) -> HealthCheckResponse:
        """Overall status."""
        pass

    @abstractmethod
    async def check_database_health(self) -> Dict[str, Any]:
        """Database connectivity."""
        pass

    @abstractmethod
    async def check_change_feed_health(self) -> Dict[str, Any]:
        """Change feed status."""
        pass
