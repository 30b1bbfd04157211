"""Note service implementation."""

from datetime import datetime, timezone

from fastapi import HTTPException, status

from ...config import Settings
from ..exceptions import StoreError
from ..live_query import to_note_record
from ..logging import get_logger
from ..schemas.notes import NoteCreate, NoteRecord, NoteUpdate
from ..store import NoteDocument, NoteStore
from .interfaces import INoteService

logger = get_logger("note_service")


class NoteService(INoteService):
    """One request, one store operation, one response.

    Nothing here notifies clients: the store's change feed wakes every live
    query once the write has landed.
    """

    def __init__(self, store: NoteStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def create_note(self, request: NoteCreate) -> NoteRecord:
        """Create new note."""
        note_id = await self.store.create({"text": request.text, "user_id": request.user_id})
        logger.info("Note created", extra={"note_id": note_id})
        return await self._load(note_id)

    async def get_note(self, note_id: str) -> NoteRecord:
        """Get note by ID."""
        doc = await self.store.get(note_id)
        if doc is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
        return self._to_record(doc)

    async def update_note(self, note_id: str, request: NoteUpdate) -> NoteRecord:
        """Replace the text of an existing note.

        A missing note surfaces as ``NoteNotFoundError`` from the store, which
        the API reports as a server error rather than a validation failure.
        """
        await self.store.update(note_id, {"text": request.text})
        logger.info("Note updated", extra={"note_id": note_id})
        return await self._load(note_id)

    async def delete_note(self, note_id: str) -> None:
        """Delete note; deleting a missing note is not an error."""
        deleted = await self.store.delete(note_id)
        logger.info("Note deleted" if deleted else "Note already absent", extra={"note_id": note_id})

    async def _load(self, note_id: str) -> NoteRecord:
        doc = await self.store.get(note_id)
        if doc is None:
            # removed by a concurrent delete between the write and this read
            raise StoreError(f"Note {note_id} vanished after write")
        return self._to_record(doc)

    def _to_record(self, doc: NoteDocument) -> NoteRecord:
        return to_note_record(doc, datetime.now(timezone.utc), self.settings.date_display_format)
