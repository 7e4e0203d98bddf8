import structlog
from pydantic import ValidationError as PydanticValidationError

from penwise.core.modules.kv.models import DataActions, SetParams
from penwise.core.modules.kv.service import KVService
from penwise.core.modules.session.models import SessionRecord
from penwise.errors import StoreError

logger = structlog.get_logger(__name__)

SESSION_KEY = "session"
SESSION_UNIQUE_KEY = "userId"


class SessionStore:
    """Typed access to session records so the key convention lives in one place."""

    def __init__(self, kv: KVService, ttl_seconds: int) -> None:
        self._kv = kv
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(user_id: str) -> str:
        return f"{SESSION_KEY}-{user_id}"

    async def get_session(self, user_id: str) -> SessionRecord | None:
        data = await self._kv.get(self.key_for(user_id))
        if data is None:
            return None
        try:
            return SessionRecord.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("session_record_invalid", user_id=user_id, error=str(e))
            return None

    async def put_session(self, record: SessionRecord, ttl_seconds: int | None = None) -> None:
        """Replace the user's session record. Every write refreshes the TTL."""
        params = SetParams(
            key=SESSION_KEY,
            value=record.model_dump(mode="json", by_alias=True),
            expiry=ttl_seconds or self._ttl_seconds,
            data_actions=DataActions(unique_key=SESSION_UNIQUE_KEY),
        )
        if not await self._kv.set(params):
            raise StoreError(f"Failed to persist session for user '{record.user_id}'")

    async def delete_session(self, user_id: str) -> None:
        await self._kv.delete(self.key_for(user_id))
