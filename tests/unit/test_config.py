"""Unit tests for configuration module."""

import pytest
from pydantic import ValidationError

from inbox_watch.config import Settings, get_settings


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self) -> None:
        """Test that default settings are properly initialized."""
        settings = Settings()

        assert settings.imap_port == 993
        assert settings.imap_ssl is True
        assert settings.imap_use_uid is True
        assert settings.mailbox == "INBOX"
        assert settings.poll_interval_seconds == 2.0
        assert settings.since_skew_seconds == 1.0
        assert settings.strict_filters is False
        assert settings.log_level == "INFO"
        assert settings.debug is False

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("INBOX_WATCH_IMAP_HOST", "imap.example.test")
        monkeypatch.setenv("INBOX_WATCH_IMAP_PORT", "143")
        monkeypatch.setenv("INBOX_WATCH_IMAP_SSL", "false")
        monkeypatch.setenv("INBOX_WATCH_POLL_INTERVAL_SECONDS", "0.5")
        monkeypatch.setenv("INBOX_WATCH_STRICT_FILTERS", "true")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.imap_host == "imap.example.test"
        assert settings.imap_port == 143
        assert settings.imap_ssl is False
        assert settings.poll_interval_seconds == 0.5
        assert settings.strict_filters is True

        # Clean up
        get_settings.cache_clear()

    def test_poll_interval_must_be_positive(self) -> None:
        """Test that a zero poll interval is rejected."""
        with pytest.raises(ValidationError):
            Settings(poll_interval_seconds=0)

    def test_since_skew_cannot_be_negative(self) -> None:
        """Test that a negative SINCE skew is rejected."""
        with pytest.raises(ValidationError):
            Settings(since_skew_seconds=-1)

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()
