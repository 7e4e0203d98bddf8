from datetime import datetime
from uuid import UUID

from pydantic import Field

from penwise.core.db import MongoModel
from penwise.core.wire import CamelModel
from penwise.utils import now


class JournalEntry(MongoModel):
    """Journal entry. Tags and categories are stored lower-cased.

    Indexed on (user_id, entry_date).
    """

    user_id: UUID
    title: str = ""
    content: str
    entry_date: datetime = Field(default_factory=now)
    tags: list[str] = []
    categories: list[str] = []
    summary: str | None = None
    updated_at: datetime = Field(default_factory=now)


class EntrySnapshot(CamelModel):
    """Payload published on the entry queue for post-processing."""

    id: UUID
    user_id: UUID
    title: str | None = ""
    content: str
    entry_date: datetime
    tags: list[str] = []
    categories: list[str] = []

    @classmethod
    def from_entry(cls, entry: JournalEntry) -> "EntrySnapshot":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            title=entry.title,
            content=entry.content,
            entry_date=entry.entry_date,
            tags=entry.tags,
            categories=entry.categories,
        )


class EntryView(CamelModel):
    """Journal entry (API representation)."""

    id: UUID = Field(..., description="Entry ID")
    title: str = Field(..., description="Title, derived when left blank")
    content: str = Field(..., description="Entry text")
    entry_date: datetime = Field(..., description="When the entry was written")
    tags: list[str] = Field(..., description="Tags")
    categories: list[str] = Field(..., description="Categories")
    summary: str | None = Field(None, description="Generated summary, if enabled")

    @classmethod
    def from_domain(cls, entry: JournalEntry) -> "EntryView":
        return cls(
            id=entry.id,
            title=entry.title,
            content=entry.content,
            entry_date=entry.entry_date,
            tags=entry.tags,
            categories=entry.categories,
            summary=entry.summary,
        )
