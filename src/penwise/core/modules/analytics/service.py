from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from penwise.core.core import Service
from penwise.core.modules.analysis.models import SentimentResult
from penwise.core.modules.analytics.models import (
    AnalyticsData,
    JournalSummary,
    Mood,
    SentimentExtremes,
    SentimentScore,
    TextStats,
)
from penwise.core.modules.analytics.summary import build_summary, find_extremes
from penwise.core.modules.analytics.text import determine_time_of_day
from penwise.errors import NotFoundError

logger = structlog.get_logger(__name__)


class AnalyticsService(Service):
    """Persists per-entry sentiment scores and text analytics."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._scores = database.get_collection("sentiment_scores")
        self._analytics = database.get_collection("analytics_data")

    async def on_start(self) -> None:
        await self._scores.create_index([("journal_id", 1)], unique=True)
        await self._analytics.create_index([("journal_id", 1)], unique=True)

    async def record_sentiment(self, journal_id: UUID, sentiment: SentimentResult, mood: Mood) -> SentimentScore:
        """Create or replace the sentiment score of an entry, keeping its id."""
        existing = await self.get_sentiment(journal_id)
        score = SentimentScore(
            journal_id=journal_id,
            score=sentiment.score,
            magnitude=sentiment.comparative,
            mood=mood,
            positive_words=sentiment.positive,
            negative_words=sentiment.negative,
        )
        if existing is not None:
            score.id = existing.id
        await self._scores.replace_one({"journal_id": journal_id}, score.to_mongo(), upsert=True)
        return score

    async def get_sentiment(self, journal_id: UUID) -> SentimentScore | None:
        return SentimentScore.from_mongo(await self._scores.find_one({"journal_id": journal_id}))

    async def get_analytics(self, journal_id: UUID) -> AnalyticsData | None:
        return AnalyticsData.from_mongo(await self._analytics.find_one({"journal_id": journal_id}))

    async def upsert_analytics(
        self, journal_id: UUID, stats: TextStats, entry_date: datetime, tags_count: int, categories_count: int
    ) -> AnalyticsData:
        """Create or replace the analytics document of an entry, keeping its id."""
        existing = await self.get_analytics(journal_id)
        data = AnalyticsData(
            journal_id=journal_id,
            **stats.model_dump(),
            tags_count=tags_count,
            categories_count=categories_count,
            time_of_day=determine_time_of_day(entry_date),
            entry_date=entry_date,
        )
        if existing is not None:
            data.id = existing.id
        await self._analytics.replace_one({"journal_id": journal_id}, data.to_mongo(), upsert=True)
        logger.debug("analytics_upserted", journal_id=str(journal_id), words=stats.word_count)
        return data

    async def get_summary(self, user_id: UUID, start: datetime, end: datetime) -> JournalSummary:
        """Writing and mood statistics of the user's entries dated within [start, end]."""
        entries = await self.core.services.journal.list_entries(user_id, start, end)
        if not entries:
            raise NotFoundError("No entries found")
        journal_ids = [entry.id for entry in entries]
        analytics = await AnalyticsData.list_cursor(
            self._analytics.find({"journal_id": {"$in": journal_ids}}).sort("entry_date", 1)
        )
        scores = await self._scores_of(journal_ids)
        logger.debug("journal_summary_built", user_id=str(user_id), entries=len(entries), scored=len(scores))
        return build_summary(entries, analytics, scores)

    async def get_sentiment_extremes(self, user_id: UUID, start: datetime, end: datetime) -> SentimentExtremes:
        entries = await self.core.services.journal.list_entries(user_id, start, end)
        scores = await self._scores_of([entry.id for entry in entries])
        if not scores:
            raise NotFoundError("No sentiment data found")
        return find_extremes(entries, scores)

    async def _scores_of(self, journal_ids: list[UUID]) -> list[SentimentScore]:
        if not journal_ids:
            return []
        cursor = self._scores.find({"journal_id": {"$in": journal_ids}}).sort("created_at", 1)
        return await SentimentScore.list_cursor(cursor)
