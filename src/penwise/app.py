from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from penwise.config import Config
from penwise.core.core import Core
from penwise.core.modules.analytics.models import JournalSummary, SentimentExtremes
from penwise.core.modules.journal.models import EntryView
from penwise.core.modules.session.models import AccessClaims, LoginResult, TokenPair
from penwise.core.modules.user.models import PreferencesUpdate, PreferencesView, UserRole, UserView
from penwise.errors import AccessDeniedError
from penwise.utils import as_utc, now, start_of_year


class App:
    """Facade for all application operations, resolves the caller before delegating to Core."""

    def __init__(self, config: Config) -> None:
        self._core = Core(config)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    def authenticate(self, access_token: str) -> AccessClaims:
        """Resolve the caller from a bearer access token."""
        return self._core.services.session.verify_access_token(access_token)

    # Session lifecycle

    async def login(self, email: str, password: str, address: str | None = None) -> LoginResult:
        """Check credentials; returns tokens, or an OTP challenge when two-factor is on."""
        return await self._core.services.session.login(email, password, address)

    async def verify_otp(self, user_id: str, otp: str) -> TokenPair:
        return await self._core.services.session.verify_otp(user_id, otp)

    async def resend_otp(self, user_id: str) -> str:
        return await self._core.services.session.resend_otp(user_id)

    async def refresh_token(self, user_id: str, refresh_token: str) -> TokenPair:
        return await self._core.services.session.refresh(user_id, refresh_token)

    async def logout(self, user_id: str | None) -> None:
        await self._core.services.session.logout(user_id)

    # Accounts

    async def register_user(self, name: str, email: str, password: str, role: UserRole = UserRole.USER) -> UserView:
        user = await self._core.services.user.create_user(name, email, password, role)
        return UserView.from_domain(user)

    async def reset_password(self, email: str, password: str) -> None:
        await self._core.services.user.reset_password(email, password)

    async def update_preferences(self, claims: AccessClaims, update: PreferencesUpdate) -> PreferencesView:
        """Replace the caller's preferences."""
        prefs = await self._core.services.user.update_preferences(claims.user_id, update)
        return PreferencesView.from_domain(prefs)

    # Journal

    async def create_entry(
        self, claims: AccessClaims, title: str, content: str, tags: list[str], categories: list[str]
    ) -> EntryView:
        """Store an entry and queue it for post-processing."""
        entry = await self._core.services.journal.create_entry(claims.user_id, title, content, tags, categories)
        return EntryView.from_domain(entry)

    async def update_entry(
        self,
        claims: AccessClaims,
        entry_id: UUID,
        title: str | None,
        content: str | None,
        tags: list[str],
        categories: list[str],
    ) -> EntryView:
        """Update one of the caller's entries and queue it for post-processing again."""
        entry = await self._core.services.journal.update_entry(
            entry_id, claims.user_id, title, content, tags, categories
        )
        return EntryView.from_domain(entry)

    async def get_entry(self, claims: AccessClaims, entry_id: UUID) -> EntryView:
        entry = await self._core.services.journal.get_user_entry(entry_id, claims.user_id)
        return EntryView.from_domain(entry)

    # Insights (admin only)

    async def get_summary(self, claims: AccessClaims, start: datetime | None, end: datetime | None) -> JournalSummary:
        """Statistics of the caller's entries; the range defaults to the current year so far."""
        self._ensure_admin(claims)
        start, end = self._date_range(start, end)
        return await self._core.services.analytics.get_summary(claims.user_id, start, end)

    async def get_sentiment_extremes(
        self, claims: AccessClaims, start: datetime | None, end: datetime | None
    ) -> SentimentExtremes:
        """Most positive and most negative of the caller's scored entries in the range."""
        self._ensure_admin(claims)
        start, end = self._date_range(start, end)
        return await self._core.services.analytics.get_sentiment_extremes(claims.user_id, start, end)

    @staticmethod
    def _ensure_admin(claims: AccessClaims) -> None:
        if claims.role != UserRole.ADMIN:
            raise AccessDeniedError("Access denied")

    @staticmethod
    def _date_range(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
        end = as_utc(end) if end is not None else now()
        start = as_utc(start) if start is not None else start_of_year(now())
        return start, end
