"""AFINN word-list sentiment scoring.

Each token is scored against the AFINN lexicon (valences -5..5). A negator
directly before a scored word flips its valence. The comparative score
divides the total by the token count.
"""

import re

from afinn import Afinn

from penwise.core.modules.analysis.models import SentimentResult

TOKEN_RE = re.compile(r"[a-z0-9']+")

NEGATORS = frozenset(
    {
        "not",
        "no",
        "never",
        "don't",
        "dont",
        "doesn't",
        "didn't",
        "isn't",
        "wasn't",
        "aren't",
        "weren't",
        "can't",
        "cannot",
        "couldn't",
        "won't",
        "wouldn't",
        "shouldn't",
    }
)

_afinn: Afinn | None = None


def _lexicon() -> Afinn:
    global _afinn
    if _afinn is None:
        _afinn = Afinn(language="en")
    return _afinn


def word_valence(token: str) -> float:
    return _lexicon().score(token)


def analyze_lexicon(text: str) -> SentimentResult:
    tokens = TOKEN_RE.findall(text.lower())
    score = 0.0
    positive: list[str] = []
    negative: list[str] = []
    for index, token in enumerate(tokens):
        valence = word_valence(token)
        if not valence:
            continue
        if index > 0 and tokens[index - 1] in NEGATORS:
            valence = -valence
        score += valence
        (positive if valence > 0 else negative).append(token)

    comparative = score / len(tokens) if tokens else 0
    return SentimentResult(score=score, comparative=comparative, positive=positive, negative=negative)
