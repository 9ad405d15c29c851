"""Custom exceptions for inbox-watch."""

from __future__ import annotations

from enum import Enum


class InboxWatchError(Exception):
    """Base exception for all inbox-watch errors."""


class ConfigurationError(InboxWatchError):
    """Exception raised for configuration related errors."""


class MailConnectionError(InboxWatchError):
    """Exception raised when the IMAP server cannot be reached."""


class AuthenticationError(InboxWatchError):
    """Exception raised for authentication failures."""


class NotConnectedError(InboxWatchError):
    """Exception raised when an operation needs a session that was never logged in."""


class MailboxError(InboxWatchError):
    """Exception raised when a mailbox cannot be selected."""


class SearchError(InboxWatchError):
    """Exception raised when a SEARCH command fails."""


class FetchError(InboxWatchError):
    """Exception raised when a FETCH command fails."""


class StoreError(InboxWatchError):
    """Exception raised when a STORE (flag update) command fails."""


class ExpungeError(InboxWatchError):
    """Exception raised when an EXPUNGE command fails."""


class DecodeError(InboxWatchError):
    """Exception raised when a fetched message cannot be decoded at all."""


class FilterValidationError(InboxWatchError):
    """Exception raised by strict header filter translation."""


class WatchTimeoutError(InboxWatchError, TimeoutError):
    """Exception raised when no new message arrived within the watch timeout."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"no new email found within {timeout_ms} ms")
        self.timeout_ms = timeout_ms


class PurgePhase(str, Enum):
    """Step of a purge that failed."""

    MARK = "mark"
    EXPUNGE = "expunge"


class PurgeStoreError(StoreError):
    """Marking messages deleted failed; nothing was flagged and expunge did not run."""

    phase = PurgePhase.MARK

    def __init__(self, message: str, flagged_count: int = 0) -> None:
        super().__init__(message)
        self.flagged_count = flagged_count


class PurgeExpungeError(ExpungeError):
    """Expunge failed after messages were flagged deleted.

    The flagged messages stay on the server until the next successful expunge.
    """

    phase = PurgePhase.EXPUNGE

    def __init__(self, message: str, flagged_count: int) -> None:
        super().__init__(message)
        self.flagged_count = flagged_count
