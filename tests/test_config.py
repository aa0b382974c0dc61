"""Tests for taskboard.config: settings validation."""

import pytest
from pydantic import ValidationError

from taskboard.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.PUSH_PROVIDER == "log"
        assert s.REMINDER_INTERVAL_SECONDS == 60
        assert s.INVITATION_EXPIRY_DAYS == 7
        assert s.INVITATION_BASE_PATH == "/team-invitation"

    def test_provider_is_normalized(self):
        assert Settings(PUSH_PROVIDER=" Telegram ").PUSH_PROVIDER == "telegram"
        assert Settings(PUSH_PROVIDER="").PUSH_PROVIDER == "log"

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            Settings(PUSH_PROVIDER="fcm")

    def test_intervals_are_parsed(self):
        s = Settings(REMINDER_INTERVAL_SECONDS="30", COMMENT_DEDUP_SECONDS="5")
        assert s.REMINDER_INTERVAL_SECONDS == 30
        assert s.COMMENT_DEDUP_SECONDS == 5

    def test_non_positive_interval(self):
        with pytest.raises(ValidationError):
            Settings(REMINDER_INTERVAL_SECONDS="0")
        with pytest.raises(ValidationError):
            Settings(INVITATION_EXPIRY_DAYS=-1)

    def test_log_level(self):
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
