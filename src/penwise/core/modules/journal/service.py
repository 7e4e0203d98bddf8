from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from penwise.core.core import Service
from penwise.core.modules.journal.models import EntrySnapshot, JournalEntry
from penwise.errors import NotFoundError
from penwise.utils import now

logger = structlog.get_logger(__name__)


def _normalize_labels(labels: list[str]) -> list[str]:
    """Lower-case, strip and de-duplicate while keeping order."""
    seen: dict[str, None] = {}
    for label in labels:
        cleaned = label.strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class JournalService(Service):
    """Stores journal entries and hands every write to the post-processing queue."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("journal_entries")

    async def on_start(self) -> None:
        await self._collection.create_index([("user_id", 1), ("entry_date", 1)])

    async def get_entry(self, entry_id: UUID) -> JournalEntry | None:
        return JournalEntry.from_mongo(await self._collection.find_one({"_id": entry_id}))

    async def get_user_entry(self, entry_id: UUID, user_id: UUID) -> JournalEntry:
        """Get an entry owned by the user, NotFoundError otherwise."""
        entry = await self.get_entry(entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError("Journal entry not found")
        return entry

    async def list_entries(self, user_id: UUID, start: datetime, end: datetime) -> list[JournalEntry]:
        """Entries of the user written within [start, end], oldest first."""
        query = {"user_id": user_id, "entry_date": {"$gte": start, "$lte": end}}
        return await JournalEntry.list_cursor(self._collection.find(query).sort("entry_date", 1))

    async def create_entry(
        self, user_id: UUID, title: str, content: str, tags: list[str], categories: list[str]
    ) -> JournalEntry:
        entry = JournalEntry(
            user_id=user_id,
            title=title.strip(),
            content=content,
            tags=_normalize_labels(tags),
            categories=_normalize_labels(categories),
        )
        await self._collection.insert_one(entry.to_mongo())
        self._enqueue(entry)
        logger.info("journal_entry_created", entry_id=str(entry.id))
        return entry

    async def update_entry(
        self,
        entry_id: UUID,
        user_id: UUID,
        title: str | None,
        content: str | None,
        tags: list[str],
        categories: list[str],
    ) -> JournalEntry:
        """Update an entry. Tags and categories are replaced by the given lists."""
        await self.get_user_entry(entry_id, user_id)
        patch: dict[str, Any] = {
            "tags": _normalize_labels(tags),
            "categories": _normalize_labels(categories),
            "updated_at": now(),
        }
        if title is not None:
            patch["title"] = title.strip()
        if content is not None:
            patch["content"] = content
        await self._collection.update_one({"_id": entry_id}, {"$set": patch})

        entry = await self.get_user_entry(entry_id, user_id)
        self._enqueue(entry)
        logger.info("journal_entry_updated", entry_id=str(entry.id))
        return entry

    async def apply_analysis(
        self,
        entry_id: UUID,
        title: str | None = None,
        summary: str | None = None,
        tags: list[str] | None = None,
        categories: list[str] | None = None,
    ) -> None:
        """Store fields derived by post-processing. None leaves a field untouched."""
        patch: dict[str, Any] = {}
        if title is not None:
            patch["title"] = title
        if summary is not None:
            patch["summary"] = summary
        if tags is not None:
            patch["tags"] = _normalize_labels(tags)
        if categories is not None:
            patch["categories"] = _normalize_labels(categories)
        if patch:
            await self._collection.update_one({"_id": entry_id}, {"$set": patch})

    def _enqueue(self, entry: JournalEntry) -> None:
        self.core.services.queue.publish_entry(EntrySnapshot.from_entry(entry))
