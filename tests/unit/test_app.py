from datetime import UTC, datetime
from uuid import uuid4

import pytest

from penwise.app import App
from penwise.core.modules.session.models import AccessClaims
from penwise.errors import AccessDeniedError


class TestInsightAccess:
    """Admin gate and date range of the insight operations."""

    def test_user_role_is_denied(self):
        with pytest.raises(AccessDeniedError, match="Access denied"):
            App._ensure_admin(AccessClaims(user_id=uuid4(), role="USER"))

    def test_admin_role_is_allowed(self):
        App._ensure_admin(AccessClaims(user_id=uuid4(), role="ADMIN"))

    def test_range_defaults_to_current_year(self):
        start, end = App._date_range(None, None)

        assert start == datetime(end.year, 1, 1, tzinfo=UTC)
        assert end.tzinfo is not None

    def test_naive_bounds_are_utc(self):
        start, end = App._date_range(datetime(2024, 3, 1), datetime(2024, 4, 1, 12))

        assert start == datetime(2024, 3, 1, tzinfo=UTC)
        assert end == datetime(2024, 4, 1, 12, tzinfo=UTC)
