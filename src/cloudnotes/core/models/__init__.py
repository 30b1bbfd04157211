"""
Database models for Cloud Notes.

Models included:
    - Note: a short text note with its creation instant
"""

from .base import BaseModel
from .note import Note

__all__ = [
    "BaseModel",
    "Note",
]
