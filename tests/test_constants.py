from datetime import datetime, timezone

from freezegun import freeze_time

from praxis.constants import ROLE_ADMIN, ROLE_USER, utcnow


class TestRoles:
    def test_distinct(self):
        assert ROLE_USER != ROLE_ADMIN


class TestUtcnow:
    def test_naive(self):
        assert utcnow().tzinfo is None

    @freeze_time("2026-10-19 12:00:00")
    def test_is_utc(self):
        assert utcnow() == datetime(2026, 10, 19, 12, 0, 0)
        assert utcnow() == datetime.now(timezone.utc).replace(tzinfo=None)
