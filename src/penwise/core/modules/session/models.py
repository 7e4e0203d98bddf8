"""Session records kept in the KV store, one per user."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from penwise.core.wire import CamelModel


class SessionState(StrEnum):
    NO_SESSION = "no_session"
    OTP_PENDING = "otp_pending"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class SessionRecord(CamelModel):
    """Session stored under ``session-<userId>``.

    Writing a record for a user replaces any previous one, so a user has at
    most one live session and only the latest refresh token validates.
    """

    user_id: str
    refresh_token: str
    refresh_token_expiry: datetime
    otp_value: str | None = None  # bcrypt digest of the pending OTP
    otp_verified: bool = True
    otp_expiry: datetime
    session_start: datetime
    session_end: datetime | None = None
    session_address: str | None = None
    session_status: bool = True  # gates refresh eligibility

    def state(self, at: datetime) -> SessionState:
        """Lifecycle state at a given moment; expiry is evaluated lazily."""
        if at >= self.refresh_token_expiry:
            return SessionState.EXPIRED
        if not self.otp_verified:
            return SessionState.OTP_PENDING
        return SessionState.AUTHENTICATED


class TokenPair(CamelModel):
    token: str
    refresh_token: str


class LoginResult(CamelModel):
    """Outcome of a successful login: either a token pair or an OTP challenge."""

    user_id: str
    tokens: TokenPair | None = None
    otp: str | None = None

    @property
    def otp_required(self) -> bool:
        return self.otp is not None


class AccessClaims(CamelModel):
    """Identity carried by a verified access token."""

    user_id: UUID
    role: str
