import hmac
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from penwise.core.core import Service
from penwise.core.modules.session.models import AccessClaims, LoginResult, SessionRecord, SessionState, TokenPair
from penwise.core.modules.session.store import SessionStore
from penwise.core.modules.user.models import Password, User, UserPreferences
from penwise.errors import AuthenticationError, ConflictError, NotFoundError, RateLimitError, ValidationError
from penwise.security import (
    create_access_token,
    decode_access_token,
    generate_otp,
    generate_refresh_token,
    hash_secret,
    verify_secret,
)
from penwise.utils import add_minutes, hours_between, now

logger = structlog.get_logger(__name__)


class UserStore(Protocol):
    """User and password lookups the session lifecycle depends on."""

    async def find_user_by_email(self, email: str) -> User | None: ...

    async def find_user(self, user_id: UUID) -> User | None: ...

    async def find_active_password(self, user_id: UUID) -> Password | None: ...

    async def update_user(
        self, user_id: UUID, patch: dict[str, Any], increments: dict[str, int] | None = None
    ) -> None: ...

    async def deactivate_password(self, password_id: UUID) -> None: ...

    async def get_preferences(self, user_id: UUID) -> UserPreferences: ...


def _parse_user_id(user_id: str) -> UUID | None:
    try:
        return UUID(user_id)
    except (TypeError, ValueError):
        return None


class SessionService(Service):
    """Login, OTP challenges, token refresh and logout on top of the KV session store.

    States: NO_SESSION -> OTP_PENDING -> AUTHENTICATED, or straight to
    AUTHENTICATED when two-factor is off. Expiry is checked lazily at use time.
    Concurrent mutations of the same session are last-write-wins.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._store: SessionStore | None = None

    @property
    def store(self) -> SessionStore:
        if self._store is None:
            self._store = SessionStore(self.core.services.kv, self.core.config.session_ttl_seconds)
        return self._store

    @property
    def users(self) -> UserStore:
        return self.core.services.user

    async def login(self, email: str, password: str, address: str | None = None) -> LoginResult:
        """Check credentials and open a session, issuing tokens or an OTP challenge."""
        config = self.core.config
        user = await self.users.find_user_by_email(email)
        if user is None:
            raise NotFoundError("User does not exist")

        if not user.status or user.is_locked_out:
            raise AuthenticationError("Account locked! Contact our help desk")

        password_record = await self.users.find_active_password(user.id)
        if password_record is None:
            raise AuthenticationError("Unauthorized!")

        current = now()
        if password_record.password_expiry <= current:
            await self.users.deactivate_password(password_record.id)
            raise AuthenticationError("Password expired!")

        if not verify_secret(password_record.password, password):
            failed_count = user.access_failed_count + 1
            await self.users.update_user(
                user.id,
                {"is_locked_out": failed_count >= config.account_lock_max_count},
                increments={"access_failed_count": 1},
            )
            logger.info("login_failed", user_id=str(user.id), failed_count=failed_count)
            raise AuthenticationError("Invalid credentials")

        preferences = await self.users.get_preferences(user.id)
        otp: str | None = None
        if preferences.two_factor_enabled:
            self._ensure_otp_budget(user, current, "Too Many OTP requests, try again later!")
            otp = generate_otp()

        record = SessionRecord(
            user_id=str(user.id),
            refresh_token=generate_refresh_token(),
            refresh_token_expiry=current + self._refresh_lifetime(),
            otp_value=hash_secret(otp) if otp else None,
            otp_verified=otp is None,
            otp_expiry=add_minutes(current, config.otp_expiry_minutes),
            session_start=current,
            session_address=address,
            session_status=otp is None,
        )
        await self.store.put_session(record)

        if otp is not None:
            await self.users.update_user(user.id, {"access_failed_count": 0})
            await self._bump_otp_counters(user, current)
            logger.info("login_otp_issued", user_id=record.user_id)
            # Returned to the caller until an email/SMS channel exists
            return LoginResult(user_id=record.user_id, otp=otp)

        await self.users.update_user(user.id, {"last_login_date": current, "access_failed_count": 0})
        logger.info("login_succeeded", user_id=record.user_id)
        return LoginResult(
            user_id=record.user_id,
            tokens=TokenPair(token=self._access_token(user), refresh_token=record.refresh_token),
        )

    async def verify_otp(self, user_id: str, otp: str) -> TokenPair:
        """Complete a pending OTP challenge. Each challenge verifies at most once."""
        session = await self.store.get_session(user_id)
        if session is None:
            raise AuthenticationError("No active session")

        current = now()
        if session.state(current) == SessionState.EXPIRED:
            raise AuthenticationError("Session expired!")

        if session.otp_verified:
            raise ConflictError("OTP already used, request for another one")

        if current > session.otp_expiry:
            raise ConflictError("OTP expired!")

        if not verify_secret(session.otp_value, otp):
            raise ValidationError("Invalid OTP")

        user = await self._require_user(user_id)

        session.otp_verified = True
        session.otp_value = None
        session.otp_expiry = add_minutes(current, self.core.config.otp_expiry_minutes)
        session.session_status = True
        await self.store.put_session(session)
        await self._bump_otp_counters(user, current)
        logger.info("otp_verified", user_id=user_id)
        return TokenPair(token=self._access_token(user), refresh_token=session.refresh_token)

    async def resend_otp(self, user_id: str) -> str:
        """Re-arm a fresh OTP challenge on the existing session and return the code."""
        parsed_id = _parse_user_id(user_id)
        user = await self.users.find_user(parsed_id) if parsed_id else None
        if user is None:
            raise NotFoundError("User does not exist")

        current = now()
        self._ensure_otp_budget(user, current, "Surpassed Maximum Number of OTP Resends! Contact Administrator!")

        session = await self.store.get_session(user_id)
        if session is None:
            raise NotFoundError("Session not found! Log in again")

        otp = generate_otp()
        session.otp_verified = False
        session.otp_value = hash_secret(otp)
        session.otp_expiry = add_minutes(current, self.core.config.otp_expiry_minutes)
        await self.store.put_session(session)
        await self._bump_otp_counters(user, current)
        logger.info("otp_resent", user_id=user_id)
        return otp

    async def refresh(self, user_id: str, presented_token: str) -> TokenPair:
        """Mint a new access token for a live session holding the presented refresh token."""
        session = await self.store.get_session(user_id)
        if session is None:
            raise NotFoundError("No active session")

        current = now()
        if not session.session_status or current >= session.refresh_token_expiry:
            raise AuthenticationError("Session expired!")

        if not hmac.compare_digest(presented_token.encode("utf-8"), session.refresh_token.encode("utf-8")):
            raise AuthenticationError("Invalid session")

        parsed_id = _parse_user_id(user_id)
        user = await self.users.find_user(parsed_id) if parsed_id else None
        if user is None:
            raise AuthenticationError("User does not exist!")

        if self.core.config.rotate_refresh_token:
            session.refresh_token = generate_refresh_token()
        await self.store.put_session(session)
        return TokenPair(token=self._access_token(user), refresh_token=session.refresh_token)

    async def logout(self, user_id: str | None) -> None:
        if not user_id:
            raise ValidationError("userId is required")
        await self.store.delete_session(user_id)
        logger.info("logout", user_id=user_id)

    def verify_access_token(self, token: str) -> AccessClaims:
        config = self.core.config
        payload = decode_access_token(token, config.jwt_secret, config.jwt_algorithm)
        user_id = _parse_user_id(payload["userId"]) if payload else None
        if payload is None or user_id is None:
            raise AuthenticationError("Invalid token")
        return AccessClaims(user_id=user_id, role=str(payload.get("role", "")))

    def _access_token(self, user: User) -> str:
        config = self.core.config
        return create_access_token(
            str(user.id), user.role, config.jwt_secret, config.jwt_algorithm, config.access_token_expire_minutes
        )

    def _refresh_lifetime(self) -> timedelta:
        config = self.core.config
        if config.jwt_refresh_expiration:
            return timedelta(minutes=config.jwt_refresh_expiration)
        return timedelta(days=config.refresh_token_expiry_days)

    def _ensure_otp_budget(self, user: User, current: datetime, message: str) -> None:
        """Reject when the send ceiling is reached inside the cooldown window."""
        config = self.core.config
        in_window = hours_between(user.last_otp_resend_date, current) < config.otp_send_max_hours
        if user.otp_resend_count >= config.otp_resend_max_count and in_window:
            raise RateLimitError(message)

    async def _bump_otp_counters(self, user: User, current: datetime) -> None:
        """Count an OTP send; the counter restarts once the cooldown window has passed."""
        patch: dict[str, Any] = {"otp_sent": True, "last_otp_resend_date": current}
        if hours_between(user.last_otp_resend_date, current) >= self.core.config.otp_send_max_hours:
            patch["otp_resend_count"] = 1
            await self.users.update_user(user.id, patch)
        else:
            await self.users.update_user(user.id, patch, increments={"otp_resend_count": 1})

    async def _require_user(self, user_id: str) -> User:
        parsed_id = _parse_user_id(user_id)
        user = await self.users.find_user(parsed_id) if parsed_id else None
        if user is None:
            raise AuthenticationError("User does not exist!")
        return user
