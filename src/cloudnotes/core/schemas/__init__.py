"""
Pydantic schemas for validating and documenting API requests and responses.
"""

from .common import ErrorResponse, HealthCheckResponse
from .notes import NoteCreate, NoteRecord, NoteUpdate, dump_snapshot, parse_snapshot

__all__ = [
    # Note schemas
    "NoteCreate",
    "NoteUpdate",
    "NoteRecord",
    "dump_snapshot",
    "parse_snapshot",
    # Common schemas
    "ErrorResponse",
    "HealthCheckResponse",
]
