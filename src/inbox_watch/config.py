"""Configuration management for inbox-watch.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the INBOX_WATCH_ prefix (e.g., INBOX_WATCH_IMAP_HOST).
    """

    model_config = SettingsConfigDict(
        env_prefix="INBOX_WATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # IMAP Configuration
    imap_host: str = Field(
        default="",
        description="IMAP server host name",
    )
    imap_port: int = Field(
        default=993,
        description="IMAP server port",
    )
    imap_email: str = Field(
        default="",
        description="Login user, usually the mailbox address",
    )
    imap_password: str = Field(
        default="",
        description="Login password (an app password for most providers)",
    )
    imap_ssl: bool = Field(
        default=True,
        description="Connect with implicit TLS",
    )
    imap_timeout: float = Field(
        default=30.0,
        description="Socket timeout for IMAP round trips in seconds",
    )
    imap_use_uid: bool = Field(
        default=True,
        description=(
            "Identify messages by UID instead of sequence number. UIDs stay valid "
            "across sessions while the mailbox UIDVALIDITY is unchanged."
        ),
    )
    mailbox: str = Field(
        default="INBOX",
        description="Mailbox watched, read and purged",
    )

    # Watcher Configuration
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Sleep between two watcher iterations in seconds",
    )
    since_skew_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Seconds subtracted from the watch start for the SINCE bound",
    )
    strict_filters: bool = Field(
        default=False,
        description="Reject malformed header filter values instead of dropping them",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode (human readable console logs)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
