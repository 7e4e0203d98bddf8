import asyncio
import contextlib
from datetime import timedelta
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from penwise.core.core import Service
from penwise.core.modules.user.models import Password, PreferencesUpdate, User, UserPreferences, UserRole
from penwise.core.modules.user.validators import normalize_email, validate_password
from penwise.errors import ConflictError, NotFoundError
from penwise.security import hash_secret
from penwise.utils import now

logger = structlog.get_logger(__name__)


class UserService(Service):
    """Users, password records and preferences stored in MongoDB."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("users")
        self._passwords = database.get_collection("passwords")
        self._preferences = database.get_collection("user_preferences")
        self._sweep_task: asyncio.Task[None] | None = None

    async def on_start(self) -> None:
        """Create indexes and start the expired-password sweep."""
        await self._collection.create_index([("email", 1)], unique=True)
        await self._passwords.create_index([("user_id", 1), ("is_active", 1)])
        await self._preferences.create_index([("user_id", 1)], unique=True)
        self._sweep_task = asyncio.create_task(self._sweep_expired_passwords())
        logger.debug("user_service_started")

    async def on_stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    async def find_user_by_email(self, email: str) -> User | None:
        return User.from_mongo(await self._collection.find_one({"email": email.strip().lower()}))

    async def find_user(self, user_id: UUID) -> User | None:
        return User.from_mongo(await self._collection.find_one({"_id": user_id}))

    async def get_user(self, user_id: UUID) -> User:
        """Get user by ID, raising NotFoundError when absent."""
        user = await self.find_user(user_id)
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found")
        return user

    async def find_active_password(self, user_id: UUID) -> Password | None:
        return Password.from_mongo(await self._passwords.find_one({"user_id": user_id, "is_active": True}))

    async def update_user(self, user_id: UUID, patch: dict[str, Any], increments: dict[str, int] | None = None) -> None:
        """Apply a partial update. Increments are applied atomically by the database."""
        update: dict[str, Any] = {}
        if patch:
            update["$set"] = patch
        if increments:
            update["$inc"] = increments
        if update:
            await self._collection.update_one({"_id": user_id}, update)

    async def deactivate_password(self, password_id: UUID) -> None:
        await self._passwords.update_one({"_id": password_id}, {"$set": {"is_active": False}})

    async def get_preferences(self, user_id: UUID) -> UserPreferences:
        """Get preferences, falling back to all switches off."""
        prefs = UserPreferences.from_mongo(await self._preferences.find_one({"user_id": user_id}))
        return prefs or UserPreferences(user_id=user_id)

    async def update_preferences(self, user_id: UUID, update: PreferencesUpdate) -> UserPreferences:
        """Upsert the preferences document for a user."""
        await self._preferences.update_one(
            {"user_id": user_id},
            {"$set": update.model_dump(), "$setOnInsert": {"_id": UserPreferences(user_id=user_id).id}},
            upsert=True,
        )
        return await self.get_preferences(user_id)

    async def create_user(self, name: str, email: str, password: str, role: UserRole = UserRole.USER) -> User:
        """Create a user together with an active password record."""
        email = normalize_email(email)
        if await self.find_user_by_email(email) is not None:
            raise ConflictError("User already exists")

        validate_password(password)
        user = User(email=email, name=name.strip(), role=role, last_password_changed_date=now())
        await self._collection.insert_one(user.to_mongo())
        await self._passwords.insert_one(self._new_password(user.id, password).to_mongo())
        logger.info("user_registered", user_id=str(user.id))
        return user

    async def reset_password(self, email: str, password: str) -> None:
        """Replace the active password and reactivate the account."""
        user = await self.find_user_by_email(email)
        if user is None:
            raise NotFoundError("User does not exist")

        validate_password(password)
        await self.update_user(
            user.id,
            {
                "status": True,
                "is_locked_out": False,
                "access_failed_count": 0,
                "last_password_changed_date": now(),
            },
        )
        await self._passwords.update_many({"user_id": user.id, "is_active": True}, {"$set": {"is_active": False}})
        await self._passwords.insert_one(self._new_password(user.id, password).to_mongo())
        logger.info("password_reset", user_id=str(user.id))

    async def deactivate_expired_passwords(self) -> int:
        """Deactivate every active password whose expiry has passed."""
        result = await self._passwords.update_many(
            {"password_expiry": {"$lte": now()}, "is_active": True},
            {"$set": {"is_active": False}},
        )
        logger.info("expired_passwords_deactivated", count=result.modified_count)
        return result.modified_count

    def _new_password(self, user_id: UUID, password: str) -> Password:
        return Password(
            user_id=user_id,
            password=hash_secret(password),
            password_expiry=now() + timedelta(days=self.core.config.password_expiry_days),
        )

    async def _sweep_expired_passwords(self) -> None:
        interval = self.core.config.password_check_interval_hours * 3600
        while True:
            try:
                await self.deactivate_expired_passwords()
            except Exception:
                logger.exception("expired_password_sweep_failed")
            await asyncio.sleep(interval)
