from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

from penwise.core.db import MongoModel
from penwise.core.wire import CamelModel
from penwise.utils import now


class Mood(StrEnum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class TimeOfDay(StrEnum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"


class TextStats(BaseModel):
    """Deterministic counts derived from entry text."""

    word_count: int
    character_count: int
    sentence_count: int
    reading_time: int  # minutes
    average_sentence_length: float


class SentimentScore(MongoModel):
    """Sentiment of a processed entry, one document per journal_id."""

    journal_id: UUID
    score: float
    magnitude: float
    mood: Mood
    positive_words: list[str] = []
    negative_words: list[str] = []
    created_at: datetime = Field(default_factory=now)


class AnalyticsData(MongoModel):
    """Text analytics of an entry, one document per journal_id."""

    journal_id: UUID
    word_count: int
    character_count: int
    sentence_count: int
    reading_time: int
    average_sentence_length: float
    tags_count: int
    categories_count: int
    time_of_day: TimeOfDay
    entry_date: datetime
    updated_at: datetime = Field(default_factory=now)


class WordCountTrend(CamelModel):
    date: str = Field(..., description="Day (YYYY-MM-DD)")
    word_count: int = Field(..., description="Words written that day")


class CategoryCount(CamelModel):
    category_name: str = Field(..., description="Category")
    count: int = Field(..., description="Entries carrying the category")


class MoodTrend(CamelModel):
    date: datetime = Field(..., description="When the entry was scored")
    mood: Mood = Field(..., description="Mood of the entry")
    score: float = Field(..., description="Sentiment score")


class DayCount(CamelModel):
    date: str = Field(..., description="Day (YYYY-MM-DD)")
    count: int = Field(..., description="Entries written that day")


class MoodSummary(CamelModel):
    """Totals over the scored entries. Extremes are None when nothing was scored."""

    total_score: float = 0
    max_score: float | None = None
    min_score: float | None = None
    max_mood: Mood | None = None
    min_mood: Mood | None = None


class JournalSummary(CamelModel):
    """Writing and mood statistics over a date range (API representation)."""

    total_entries: int
    avg_word_count: float
    most_used_category: str
    word_count_trends: list[WordCountTrend]
    category_distribution: list[CategoryCount]
    time_of_day_analysis: dict[TimeOfDay, int]
    mood_trends: list[MoodTrend]
    overall_mood_per_day: dict[str, Mood]
    total_entries_per_year: dict[int, int]
    total_entries_per_week: dict[int, int]
    total_words_per_year: dict[int, int]
    total_words_per_week: dict[int, int]
    distinct_days_journaled: int
    heatmap_data: list[DayCount]
    mood_summary: MoodSummary


class SentimentExtreme(CamelModel):
    journal_id: UUID = Field(..., description="Entry ID")
    mood: Mood = Field(..., description="Mood of the entry")
    score: float = Field(..., description="Sentiment score")
    content: str = Field(..., description="Entry text")


class SentimentExtremes(CamelModel):
    """Most positive and most negative scored entries of a date range."""

    most_positive: SentimentExtreme
    most_negative: SentimentExtreme
