"""Exception types shared by the store, the live query and the API layer."""


class CloudNotesError(Exception):
    """Base class for application errors."""


class StoreError(CloudNotesError):
    """A store operation failed (connectivity, constraint, missing target)."""


class NoteNotFoundError(StoreError):
    """The note targeted by a store operation does not exist."""

    def __init__(self, note_id: str):
        super().__init__(f"Note {note_id} not found")
        self.note_id = note_id


class ChangeFeedError(CloudNotesError):
    """The change feed could not deliver or receive events."""


class LiveQueryError(CloudNotesError):
    """A live query was misused (e.g. iterated twice)."""
