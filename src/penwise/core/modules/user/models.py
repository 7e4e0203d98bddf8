from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import Field

from penwise.core.db import MongoModel
from penwise.core.wire import CamelModel
from penwise.utils import now


class UserRole(StrEnum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(MongoModel):
    """User account with lockout and OTP bookkeeping.

    Indexed on email - unique.
    """

    email: str
    name: str = ""
    role: UserRole = UserRole.USER
    status: bool = True  # False disables the account entirely
    is_locked_out: bool = False
    access_failed_count: int = 0
    otp_resend_count: int = 0
    otp_sent: bool = False
    last_otp_resend_date: datetime | None = None
    last_login_date: datetime | None = None
    last_password_changed_date: datetime | None = None
    created_at: datetime = Field(default_factory=now)


class Password(MongoModel):
    """Password record. At most one record per user is active."""

    user_id: UUID
    password: str  # bcrypt hash
    password_expiry: datetime
    is_active: bool = True


class UserPreferences(MongoModel):
    """Per-user feature switches. Missing documents mean every switch is off."""

    user_id: UUID
    auto_tag: bool = False
    auto_categorize: bool = False
    summarize: bool = False
    two_factor_enabled: bool = False
    enable_notifications: bool = False
    language: str | None = None
    time_zone: str | None = None
    reminder_time: datetime | None = None


class PreferencesUpdate(CamelModel):
    """Preference switches as sent by clients."""

    auto_tag: bool = False
    auto_categorize: bool = False
    summarize: bool = False
    two_factor_enabled: bool = False
    enable_notifications: bool = False
    language: str | None = None
    time_zone: str | None = None
    reminder_time: datetime | None = None


class UserView(CamelModel):
    """User account information (API representation)."""

    id: UUID = Field(..., description="User ID")
    email: str = Field(..., description="Email address")
    name: str = Field(..., description="Display name")
    role: UserRole = Field(..., description="Role")

    @classmethod
    def from_domain(cls, user: User) -> "UserView":
        """Create view model from domain model."""
        return cls(id=user.id, email=user.email, name=user.name, role=user.role)


class PreferencesView(PreferencesUpdate):
    """Stored preferences (API representation)."""

    user_id: UUID = Field(..., description="Owner user ID")

    @classmethod
    def from_domain(cls, prefs: UserPreferences) -> "PreferencesView":
        return cls.model_validate(prefs.model_dump(exclude={"id"}))
