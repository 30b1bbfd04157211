"""
Notes document store.

``NoteStore`` is the only component that touches the database. Besides point
reads and writes it offers ``subscribe``: a live, ordered query over the whole
collection that re-runs after every burst of change-feed events and hands the
fresh snapshot to a callback.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from .change_feed import ChangeEvent, ChangeFeed, FeedListener
from .exceptions import NoteNotFoundError, StoreError
from .logging import get_logger
from .models.note import Note
from .repositories.note_repository import NoteRepository

logger = get_logger("store")

SnapshotCallback = Callable[["Snapshot"], None]
ErrorCallback = Callable[[BaseException], None]


@dataclass(frozen=True)
class NoteDocument:
    """Plain copy of one stored note, detached from the ORM session."""

    id: str
    text: str
    created_at: Optional[datetime]
    user_id: Optional[str] = None

    @classmethod
    def from_model(cls, note: Note) -> "NoteDocument":
        return cls(id=str(note.id), text=note.text, created_at=note.created_at, user_id=note.user_id)


@dataclass(frozen=True)
class Snapshot:
    """The ordered collection as read at one instant."""

    documents: List[NoteDocument]
    read_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __len__(self) -> int:
        return len(self.documents)


class Subscription:
    """A live ordered query bound to a pair of callbacks.

    The feed listener is attached before the first read so that a change
    landing between the read and the wait still triggers a re-query.
    """

    def __init__(
        self,
        store: "NoteStore",
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        user_id: Optional[str] = None,
    ):
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self.user_id = user_id
        self._listener: FeedListener = store.change_feed.listen()
        self._released = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def active(self) -> bool:
        return not self._released and not self._task.done()

    async def _run(self) -> None:
        try:
            while True:
                snapshot = await self._store.ordered_query(user_id=self.user_id)
                self._on_snapshot(snapshot)
                await self._listener.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Live query failed", exc_info=e, extra={"user_id": self.user_id})
            self._listener.close()
            self._on_error(e)

    def unsubscribe(self) -> bool:
        """Release the subscription. Returns False if it was already released."""
        if self._released:
            return False
        self._released = True
        self._listener.close()
        self._task.cancel()
        return True


class NoteStore:
    """Document store over the ``notes`` table plus its change feed."""

    collection = "notes"

    def __init__(self, session_factory: async_sessionmaker, change_feed: ChangeFeed):
        self.session_factory = session_factory
        self.change_feed = change_feed

    async def ordered_query(self, user_id: Optional[str] = None, descending: bool = True) -> Snapshot:
        """Read the whole collection ordered by creation instant."""
        try:
            async with self.session_factory() as session:
                notes = await NoteRepository(session).list_ordered(user_id=user_id, descending=descending)
                return Snapshot(documents=[NoteDocument.from_model(note) for note in notes])
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to query {self.collection}: {e}") from e

    def subscribe(
        self,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        user_id: Optional[str] = None,
    ) -> Subscription:
        """Start a live ordered query; must be called from a running event loop."""
        return Subscription(self, on_snapshot, on_error, user_id=user_id)

    async def get(self, note_id: str) -> Optional[NoteDocument]:
        try:
            async with self.session_factory() as session:
                note = await NoteRepository(session).get_by_id(note_id)
                return NoteDocument.from_model(note) if note else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read note {note_id}: {e}") from e

    async def create(self, data: dict) -> str:
        """Insert a note; the store assigns its id and creation instant."""
        fields = {"text": data["text"], "user_id": data.get("user_id")}
        try:
            async with self.session_factory() as session:
                note = await NoteRepository(session).create_note(fields)
                note_id = str(note.id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create note: {e}") from e

        await self._announce("created", note_id)
        return note_id

    async def update(self, note_id: str, patch: dict) -> None:
        """Replace the text of an existing note."""
        changes = {"text": patch["text"]}
        try:
            async with self.session_factory() as session:
                note = await NoteRepository(session).update_note(note_id, changes)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update note {note_id}: {e}") from e

        if note is None:
            raise NoteNotFoundError(note_id)
        await self._announce("updated", note_id)

    async def delete(self, note_id: str) -> bool:
        """Delete the note if it exists; returns whether anything was removed."""
        try:
            async with self.session_factory() as session:
                deleted = await NoteRepository(session).delete_note(note_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to delete note {note_id}: {e}") from e

        if deleted:
            await self._announce("deleted", note_id)
        return deleted

    async def _announce(self, kind: str, note_id: str) -> None:
        # the write is already committed; a lost event only delays clients
        try:
            await self.change_feed.publish(ChangeEvent(kind=kind, note_id=note_id, collection=self.collection))
        except Exception as e:
            logger.error(f"Failed to publish {kind} event for note {note_id}", exc_info=e)
