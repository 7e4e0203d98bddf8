from typing import Any

import litellm
import structlog
from pydantic import ValidationError as PydanticValidationError

from penwise.core.core import Service
from penwise.core.modules.analysis.lexicon import analyze_lexicon
from penwise.core.modules.analysis.models import (
    DEFAULT_CATEGORIES,
    DEFAULT_SUMMARY,
    DEFAULT_TITLE,
    EntryAnalysis,
    SentimentResult,
)
from penwise.core.modules.analysis.prompts import (
    ENTRY_SYSTEM_PROMPT,
    SENTIMENT_SYSTEM_PROMPT,
    build_entry_analysis_prompt,
    build_sentiment_prompt,
)
from penwise.core.modules.analysis.utils import extract_json_object

logger = structlog.get_logger(__name__)

LEXICON_BACKEND = "sentiment"


class AnalysisService(Service):
    """Text analysis for journal entries.

    Sentiment comes from the word-list analyzer or the LLM, depending on the
    ``sentiment_analysis`` setting. Entry analysis always uses the LLM. Both
    degrade to neutral/default values instead of raising.
    """

    @property
    def uses_lexicon(self) -> bool:
        return self.core.config.sentiment_analysis.lower() == LEXICON_BACKEND

    async def analyze_sentiment(self, text: str) -> SentimentResult:
        if self.uses_lexicon:
            return analyze_lexicon(text)

        try:
            content = await self._complete(SENTIMENT_SYSTEM_PROMPT, build_sentiment_prompt(text), max_tokens=200)
            return SentimentResult.model_validate(extract_json_object(content))
        except (ValueError, PydanticValidationError) as e:
            logger.warning("sentiment_response_invalid", error=str(e))
        except Exception as e:
            logger.warning("sentiment_analysis_failed", error=str(e))
        return SentimentResult()

    async def analyze_entry(self, text: str) -> EntryAnalysis:
        try:
            content = await self._complete(ENTRY_SYSTEM_PROMPT, build_entry_analysis_prompt(text), max_tokens=500)
            data = extract_json_object(content)
        except ValueError as e:
            logger.warning("entry_analysis_response_invalid", error=str(e))
            return EntryAnalysis()
        except Exception as e:
            logger.warning("entry_analysis_failed", error=str(e))
            return EntryAnalysis()

        return EntryAnalysis(
            title=_text(data.get("title")) or DEFAULT_TITLE,
            summary=_text(data.get("summary")) or DEFAULT_SUMMARY,
            categories=_labels(data.get("categories")) or list(DEFAULT_CATEGORIES),
            tags=_labels(data.get("tags")),
        )

    async def _complete(self, system_prompt: str, prompt: str, max_tokens: int) -> str:
        config = self.core.config
        if not config.llm_api_key:
            raise ValueError("LLM API key not configured")

        response = await litellm.acompletion(
            model=config.llm_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            max_tokens=max_tokens,
            api_key=config.llm_api_key,
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("LLM returned empty response")
        return str(content)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _labels(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]
