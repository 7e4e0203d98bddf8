"""Aggregations behind the journal summary and sentiment extremes.

Days are keyed by the UTC calendar date of a timestamp. Weeks count from
January 1st of the timestamp's year, starting at 1.
"""

from collections import Counter, defaultdict
from datetime import datetime

from penwise.core.modules.analytics.models import (
    AnalyticsData,
    CategoryCount,
    DayCount,
    JournalSummary,
    Mood,
    MoodSummary,
    MoodTrend,
    SentimentExtreme,
    SentimentExtremes,
    SentimentScore,
    TimeOfDay,
    WordCountTrend,
)
from penwise.core.modules.analytics.text import determine_mood
from penwise.core.modules.journal.models import JournalEntry
from penwise.utils import start_of_year

NO_CATEGORY = "No category found"


def day_key(moment: datetime) -> str:
    return moment.date().isoformat()


def week_of_year(moment: datetime) -> int:
    return (moment - start_of_year(moment)).days // 7 + 1


def mood_summary(scores: list[SentimentScore]) -> MoodSummary:
    if not scores:
        return MoodSummary()
    highest = max(scores, key=lambda s: s.score)
    lowest = min(scores, key=lambda s: s.score)
    return MoodSummary(
        total_score=sum(s.score for s in scores),
        max_score=highest.score,
        min_score=lowest.score,
        max_mood=highest.mood,
        min_mood=lowest.mood,
    )


def overall_mood_per_day(scores: list[SentimentScore]) -> dict[str, Mood]:
    """Mood of each day's average score."""
    per_day: dict[str, list[float]] = defaultdict(list)
    for score in scores:
        per_day[day_key(score.created_at)].append(score.score)
    return {day: determine_mood(sum(values) / len(values)) for day, values in per_day.items()}


def build_summary(
    entries: list[JournalEntry], analytics: list[AnalyticsData], scores: list[SentimentScore]
) -> JournalSummary:
    """Summarize entries of a range. ``analytics`` is expected in entry_date order."""
    categories = Counter(category for entry in entries for category in entry.categories)
    most_used = categories.most_common(1)

    words_per_day: dict[str, int] = {}
    entries_per_day: dict[str, int] = {}
    entries_per_year: dict[int, int] = {}
    entries_per_week: dict[int, int] = {}
    words_per_year: dict[int, int] = {}
    words_per_week: dict[int, int] = {}
    time_of_day = dict.fromkeys(TimeOfDay, 0)
    for data in analytics:
        day = day_key(data.entry_date)
        year = data.entry_date.year
        week = week_of_year(data.entry_date)
        words_per_day[day] = words_per_day.get(day, 0) + data.word_count
        entries_per_day[day] = entries_per_day.get(day, 0) + 1
        entries_per_year[year] = entries_per_year.get(year, 0) + 1
        entries_per_week[week] = entries_per_week.get(week, 0) + 1
        words_per_year[year] = words_per_year.get(year, 0) + data.word_count
        words_per_week[week] = words_per_week.get(week, 0) + data.word_count
        time_of_day[data.time_of_day] += 1

    return JournalSummary(
        total_entries=len(entries),
        avg_word_count=sum(data.word_count for data in analytics) / len(entries) if entries else 0,
        most_used_category=most_used[0][0] if most_used else NO_CATEGORY,
        word_count_trends=[WordCountTrend(date=day, word_count=count) for day, count in words_per_day.items()],
        category_distribution=[CategoryCount(category_name=name, count=count) for name, count in categories.items()],
        time_of_day_analysis=time_of_day,
        mood_trends=[MoodTrend(date=s.created_at, mood=s.mood, score=s.score) for s in scores],
        overall_mood_per_day=overall_mood_per_day(scores),
        total_entries_per_year=entries_per_year,
        total_entries_per_week=entries_per_week,
        total_words_per_year=words_per_year,
        total_words_per_week=words_per_week,
        distinct_days_journaled=len(entries_per_day),
        heatmap_data=[DayCount(date=day, count=count) for day, count in entries_per_day.items()],
        mood_summary=mood_summary(scores),
    )


def find_extremes(entries: list[JournalEntry], scores: list[SentimentScore]) -> SentimentExtremes:
    """Highest and lowest scored entries; the earliest wins a tie."""
    contents = {entry.id: entry.content for entry in entries}

    def extreme(score: SentimentScore) -> SentimentExtreme:
        return SentimentExtreme(
            journal_id=score.journal_id,
            mood=score.mood,
            score=score.score,
            content=contents.get(score.journal_id, ""),
        )

    return SentimentExtremes(
        most_positive=extreme(max(scores, key=lambda s: s.score)),
        most_negative=extreme(min(scores, key=lambda s: s.score)),
    )
