"""
Live query adapter.

Turns one store subscription into an async sequence of full-collection
snapshots, each a newest-first list of ``NoteRecord``. Only the latest
unconsumed snapshot is kept: every snapshot is the complete collection, so a
slow consumer that skips intermediate ones still converges.
"""

import asyncio
from datetime import datetime
from typing import AsyncIterator, List, Optional

from .exceptions import LiveQueryError
from .logging import get_logger
from .schemas.notes import NoteRecord
from .store import NoteDocument, NoteStore, Snapshot, Subscription

logger = get_logger("live_query")

DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def to_note_record(doc: NoteDocument, observed_at: datetime, date_format: str = DEFAULT_DATE_FORMAT) -> NoteRecord:
    """Normalize one document.

    A document without a committed creation instant gets ``observed_at`` so it
    still sorts sensibly until the real timestamp lands in a later snapshot.
    """
    instant = doc.created_at if doc.created_at is not None else observed_at
    return NoteRecord.from_instant(doc.id, doc.text, instant, date_format)


def normalize_snapshot(snapshot: Snapshot, date_format: str = DEFAULT_DATE_FORMAT) -> List[NoteRecord]:
    """Snapshot -> records sorted newest first (stable for equal instants)."""
    records = [to_note_record(doc, snapshot.read_at, date_format) for doc in snapshot.documents]
    records.sort(key=lambda record: record.created_at, reverse=True)
    return records


class LiveQuery:
    """Lazy, unbounded, non-restartable stream of normalized snapshots."""

    def __init__(self, store: NoteStore, user_id: Optional[str] = None, date_format: str = DEFAULT_DATE_FORMAT):
        self.store = store
        self.user_id = user_id
        self.date_format = date_format
        self.error: Optional[BaseException] = None
        self._subscription: Optional[Subscription] = None
        self._pending: Optional[List[NoteRecord]] = None
        self._ready = asyncio.Event()
        self._started = False
        self._ended = False
        self._released = False

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        if self._ended:
            return
        self._pending = normalize_snapshot(snapshot, self.date_format)
        self._ready.set()

    def _on_error(self, error: BaseException) -> None:
        logger.warning(
            "Live query terminated by store error",
            extra={"user_id": self.user_id, "error": str(error)},
        )
        self.error = error
        self._ended = True
        self._ready.set()

    async def snapshots(self) -> AsyncIterator[List[NoteRecord]]:
        """Yield one record list per store change until closed or failed."""
        if self._started:
            raise LiveQueryError("A live query can only be iterated once")
        self._started = True
        if self._released:
            return
        self._subscription = self.store.subscribe(self._on_snapshot, self._on_error, user_id=self.user_id)

        while True:
            if self._pending is None and not self._ended:
                self._ready.clear()
                await self._ready.wait()
            if self._pending is not None:
                records, self._pending = self._pending, None
                yield records
                continue
            if self._ended:
                return

    def close(self) -> bool:
        """Release the store subscription. Returns False if already released."""
        if self._released:
            return False
        self._released = True
        self._ended = True
        self._pending = None
        self._ready.set()
        if self._subscription is not None:
            self._subscription.unsubscribe()
        return True
