from pydantic import BaseModel, Field

DEFAULT_TITLE = "Untitled"
DEFAULT_SUMMARY = "No summary available."
DEFAULT_CATEGORIES = ["Miscellaneous"]


class SentimentResult(BaseModel):
    """Sentiment of a text. Neutral when analysis is unavailable."""

    score: float = 0
    comparative: float = 0
    positive: list[str] = []
    negative: list[str] = []


class EntryAnalysis(BaseModel):
    """Title, summary and labels suggested for a journal entry."""

    title: str = DEFAULT_TITLE
    summary: str = DEFAULT_SUMMARY
    categories: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    tags: list[str] = []
