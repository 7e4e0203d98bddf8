import re
from datetime import datetime

from penwise.core.modules.analytics.models import Mood, TextStats, TimeOfDay

SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
WORDS_PER_MINUTE = 200


def determine_mood(score: float) -> Mood:
    if score > 0:
        return Mood.POSITIVE
    if score < 0:
        return Mood.NEGATIVE
    return Mood.NEUTRAL


def determine_time_of_day(moment: datetime) -> TimeOfDay:
    """Bucket by the hour as recorded on the entry date."""
    if 5 <= moment.hour < 12:
        return TimeOfDay.MORNING
    if 12 <= moment.hour < 18:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.EVENING


def calculate_text_stats(content: str) -> TextStats:
    word_count = len(content.split())
    sentence_count = sum(1 for piece in SENTENCE_SPLIT_RE.split(content) if piece.strip())
    return TextStats(
        word_count=word_count,
        character_count=len(content),
        sentence_count=sentence_count,
        reading_time=word_count // WORDS_PER_MINUTE,
        average_sentence_length=word_count / sentence_count if sentence_count else 0,
    )
