import json
from collections.abc import Callable
from typing import Any

import structlog
from pymongo.errors import PyMongoError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from penwise.core.core import Service
from penwise.core.modules.kv.models import ArrayAction, FindMode, SetParams

logger = structlog.get_logger(__name__)


class KVService(Service):
    """JSON values in Redis with namespaced keys and array-valued collections.

    Array writes are read-modify-write and not atomic: concurrent writers to the
    same array key can lose updates. Single-value writes are plain overwrites.
    """

    @property
    def redis(self) -> Redis:
        return self.core.redis

    async def get(self, key: str) -> Any | None:
        """Load and decode a value. Missing keys and undecodable payloads yield None."""
        raw = await self.redis.get(key)
        if raw is None:
            logger.warning("kv_key_missing", key=key)
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("kv_value_undecodable", key=key, error=str(e))
            return None

    async def set(self, params: SetParams) -> bool:
        """Write a value according to its data actions.

        Returns False only when the backend failed. A write skipped because
        ``unique_key`` is missing still returns True.
        """
        try:
            if params.db_operation and params.operation_name:
                await self._mirror(params)

            key = self._namespaced_key(params)
            if key is None:
                logger.warning("kv_unique_key_missing", key=params.key, operation=params.operation_name)
                return True

            actions = params.data_actions
            if actions is not None and actions.set_as_array and actions.unique_key:
                payload: Any = await self._merge_array(key, params.value, actions.action_if_exists, actions.unique_key)
            else:
                payload = params.value

            await self._write(key, json.dumps(payload, default=str), params.expiry)
        except (RedisError, PyMongoError):
            logger.exception("kv_set_failed", key=params.key)
            return False
        return True

    async def delete(self, key: str) -> None:
        """Best-effort delete."""
        try:
            await self.redis.delete(key)
        except RedisError:
            logger.exception("kv_delete_failed", key=key)

    async def find(
        self, key: str, predicate: Callable[[dict[str, Any]], bool], mode: FindMode = FindMode.MANY
    ) -> list[dict[str, Any]] | dict[str, Any] | None:
        """Search the array stored at key: every match, or the first one."""
        stored = await self.get(key)
        items: list[dict[str, Any]] = stored if isinstance(stored, list) else []
        if not items:
            logger.warning("kv_array_empty", key=key)
        if mode == FindMode.ONE:
            return next((item for item in items if predicate(item)), None)
        return [item for item in items if predicate(item)]

    def _namespaced_key(self, params: SetParams) -> str | None:
        actions = params.data_actions
        if actions is None or not actions.unique_key or actions.unique_key not in params.value:
            return None
        return f"{params.key}-{params.value[actions.unique_key]}"

    async def _merge_array(
        self, key: str, value: dict[str, Any], action: ArrayAction, unique_key: str
    ) -> list[Any]:
        existing = await self.get(key)
        items: list[Any] = existing if isinstance(existing, list) else []
        marker = value[unique_key]

        if action == ArrayAction.APPEND:
            return [*items, value]

        kept = [item for item in items if not (isinstance(item, dict) and item.get(unique_key) == marker)]
        if action == ArrayAction.REPLACE:
            kept.append(value)
        return kept

    async def _write(self, key: str, payload: str, expiry: int | None) -> None:
        if expiry:
            await self.redis.set(key, payload, ex=expiry)
        else:
            await self.redis.set(key, payload)

    async def _mirror(self, params: SetParams) -> None:
        """Copy the value into the document collection named by the key. Not transactional with the KV write."""
        collection = self.database.get_collection(params.key)
        if params.operation_name == "create":
            await collection.insert_one(dict(params.value))
            return

        unique_key = params.data_actions.unique_key if params.data_actions else None
        if params.operation_name == "update" and unique_key and unique_key in params.value:
            await collection.replace_one({unique_key: params.value[unique_key]}, dict(params.value), upsert=True)
            return

        logger.warning("kv_mirror_skipped", key=params.key, operation=params.operation_name)
