import structlog
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import ConnectionFailure

from penwise.core.core import Service
from penwise.core.modules.analytics.text import calculate_text_stats, determine_mood
from penwise.core.modules.journal.models import EntrySnapshot
from penwise.core.modules.queue.models import Delivery

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError, ConnectionFailure)


class WorkerService(Service):
    """Post-processing of journal entries taken off the entry queue.

    Returns True to acknowledge. Only transient infrastructure failures
    return False so the message is retried; payloads that can never
    succeed and other failures are logged and acknowledged.
    """

    async def process(self, delivery: Delivery) -> bool:
        try:
            snapshot = EntrySnapshot.model_validate_json(delivery.body)
        except PydanticValidationError as e:
            logger.error("entry_payload_invalid", error=str(e), retry_count=delivery.retry_count)
            return True

        log = logger.bind(entry_id=str(snapshot.id), retry_count=delivery.retry_count)
        try:
            await self.process_entry(snapshot)
        except TRANSIENT_ERRORS as e:
            log.warning("entry_processing_interrupted", error=str(e))
            return False
        except Exception:
            log.exception("entry_processing_failed")
            return True
        log.info("entry_processed")
        return True

    async def process_entry(self, snapshot: EntrySnapshot) -> None:
        services = self.core.services
        preferences = await services.user.get_preferences(snapshot.user_id)

        sentiment = await services.analysis.analyze_sentiment(snapshot.content)
        await services.analytics.record_sentiment(snapshot.id, sentiment, determine_mood(sentiment.score))

        analysis = await services.analysis.analyze_entry(snapshot.content)

        # The entry may have been edited since the snapshot was taken
        stored = await services.journal.get_entry(snapshot.id)
        current_title = stored.title if stored else (snapshot.title or "")
        existing_tags = stored.tags if stored else snapshot.tags
        existing_categories = stored.categories if stored else snapshot.categories

        title = None if current_title.strip() else analysis.title
        await services.journal.apply_analysis(
            snapshot.id,
            title=title,
            summary=analysis.summary if preferences.summarize else None,
            tags=analysis.tags if preferences.auto_tag and not existing_tags else None,
            categories=analysis.categories if preferences.auto_categorize and not existing_categories else None,
        )

        await services.analytics.upsert_analytics(
            snapshot.id,
            calculate_text_stats(snapshot.content),
            entry_date=snapshot.entry_date,
            tags_count=len(existing_tags) or len(analysis.tags),
            categories_count=len(existing_categories) or len(analysis.categories),
        )
