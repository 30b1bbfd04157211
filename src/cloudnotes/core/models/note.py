# Note model - the only document in the store
from typing import Optional

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class Note(BaseModel):
    """A short free-text note."""

    __tablename__ = "notes"

    text: Mapped[str] = mapped_column(Text, nullable=False)

    # opaque identifier sent by the client; a query predicate, not access control
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("idx_notes_created_at", "created_at"),
        Index("idx_notes_user_created", "user_id", "created_at"),
        CheckConstraint("length(text) > 0", name="ck_notes_text_not_empty"),
    )

    def __repr__(self) -> str:
        truncated = self.text if len(self.text) <= 30 else (self.text[:30] + "...")
        return f"<Note(id={self.id}, text='{truncated}')>"
