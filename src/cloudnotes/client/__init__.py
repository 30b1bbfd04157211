"""Async client for the Cloud Notes API: live note list plus mutations."""

from .mutations import MutationDispatcher, MutationError
from .session import SessionState
from .subscription import EventStreamParser, NotesSubscription

__all__ = [
    "NotesSubscription",
    "EventStreamParser",
    "MutationDispatcher",
    "MutationError",
    "SessionState",
]
