"""Note repository for database operations."""

import uuid
from typing import List, Optional

from sqlalchemy import asc, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.note import Note


def _as_uuid(note_id) -> Optional[uuid.UUID]:
    """Parse an opaque id; ids that are not UUIDs can never match a row."""
    if isinstance(note_id, uuid.UUID):
        return note_id
    try:
        return uuid.UUID(str(note_id))
    except ValueError:
        return None


class NoteRepository:
    """Repository for note database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_note(self, note_data: dict) -> Note:
        """Create new note."""
        note = Note(**note_data)
        self.session.add(note)
        await self.session.commit()
        await self.session.refresh(note)
        return note

    async def get_by_id(self, note_id) -> Optional[Note]:
        """Get note by ID."""
        key = _as_uuid(note_id)
        if key is None:
            return None
        result = await self.session.execute(select(Note).where(Note.id == key))
        return result.scalar_one_or_none()

    async def update_note(self, note_id, update_data: dict) -> Optional[Note]:
        """Apply field updates; returns None when the note does not exist."""
        note = await self.get_by_id(note_id)
        if not note:
            return None

        for key, value in update_data.items():
            setattr(note, key, value)

        await self.session.commit()
        await self.session.refresh(note)
        return note

    async def delete_note(self, note_id) -> bool:
        """Delete note if it exists."""
        note = await self.get_by_id(note_id)
        if not note:
            return False

        await self.session.delete(note)
        await self.session.commit()
        return True

    async def list_ordered(self, user_id: Optional[str] = None, descending: bool = True) -> List[Note]:
        """All notes ordered by creation instant, optionally for one user."""
        order = desc if descending else asc
        stmt = select(Note)
        if user_id is not None:
            stmt = stmt.where(Note.user_id == user_id)
        stmt = stmt.order_by(order(Note.created_at), order(Note.id))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
