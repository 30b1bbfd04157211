"""
Note schemas.

``NoteCreate`` and ``NoteUpdate`` are the request bodies of the mutation
endpoints; ``NoteRecord`` is the canonical representation returned by them
and pushed, as a list, on the event stream.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


def _require_text(v: str) -> str:
    if len(v.strip()) == 0:
        raise ValueError("Text cannot be empty")
    return v


class NoteCreate(BaseModel):
    """Note creation request schema."""

    text: str = Field(min_length=1, description="Note text")
    user_id: Optional[str] = Field(
        default=None, alias="userId", max_length=128, description="Opaque id of the creating user"
    )

    @field_validator("text")
    @classmethod
    def validate_text(cls, v):
        """Reject empty or whitespace-only text."""
        return _require_text(v)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"text": "buy milk", "userId": "u-123"}},
    )


class NoteUpdate(BaseModel):
    """Note update request schema; only the text is mutable."""

    text: str = Field(min_length=1, description="Replacement note text")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v):
        """Reject empty or whitespace-only text."""
        return _require_text(v)

    model_config = ConfigDict(json_schema_extra={"example": {"text": "buy oat milk"}})


class NoteRecord(BaseModel):
    """A note as delivered to clients."""

    id: str = Field(description="Store-assigned note identifier")
    text: str = Field(description="Note text")
    date: str = Field(description="Creation instant formatted for display (UTC)")
    created_at: Optional[int] = Field(
        default=None, alias="createdAt", description="Creation instant in epoch milliseconds"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "0b6f1c3e-6a55-4c1e-9d0c-2f9d7a0e8a11",
                "text": "buy milk",
                "date": "2025-01-01 09:30:00",
                "createdAt": 1735723800000,
            }
        },
    )

    @classmethod
    def from_instant(cls, note_id: str, text: str, instant: datetime, date_format: str) -> "NoteRecord":
        """Build a record from a creation instant; naive instants are taken as UTC."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        instant = instant.astimezone(timezone.utc)
        return cls(
            id=note_id,
            text=text,
            date=instant.strftime(date_format),
            created_at=int(instant.timestamp() * 1000),
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


NoteRecordList = TypeAdapter(List[NoteRecord])


def dump_snapshot(records: List[NoteRecord]) -> str:
    """JSON array of records as sent on the event stream."""
    return NoteRecordList.dump_json(records, by_alias=True).decode()


def parse_snapshot(payload: str) -> List[NoteRecord]:
    """Parse a JSON array of records; raises ``pydantic.ValidationError``."""
    return NoteRecordList.validate_json(payload)
