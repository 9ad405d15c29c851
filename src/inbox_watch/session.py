"""Mail session owning one IMAP connection.

Notes:
    ``imapclient`` is synchronous. Every call is wrapped with
    ``asyncio.to_thread`` and serialized by one ``asyncio.Lock``, since an
    IMAP connection cannot run two commands at once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog

from inbox_watch.config import Settings
from inbox_watch.criteria import SearchCriteria, normalize_header_filter
from inbox_watch.decoder import TEXT_SECTION, decode_message, decode_quoted_printable
from inbox_watch.exceptions import (
    AuthenticationError,
    ConfigurationError,
    MailConnectionError,
    NotConnectedError,
)
from inbox_watch.models import EmailRecord, RawMessage
from inbox_watch.purge import purge_older_than
from inbox_watch.transport import MESSAGE_ITEMS, TEXT_PEEK, ImapTransport
from inbox_watch.watcher import NewMessageWatcher

logger = structlog.get_logger()

TransportFactory = Callable[[Settings, str, int], ImapTransport]


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{name} must be a non-empty string")
    return value


def _require_port(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise ConfigurationError("port must be a number")
    port = int(value)
    if not 0 < port < 65536:
        raise ConfigurationError(f"port out of range: {port}")
    return port


class MailSession:
    """Login, one-shot read, new-message watch and purge on a single mailbox.

    Example:
        async with MailSession("me@example.com", "secret", "imap.example.com", 993) as mail:
            task = mail.watch_for_new_message({"Subject": "Your code"}, 60_000)
            record = await task
    """

    def __init__(
        self,
        email: str,
        password: str,
        host: str,
        port: int,
        settings: Settings | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """Initialize the session without connecting.

        Args:
            email: Login user.
            password: Login password.
            host: IMAP server host.
            port: IMAP server port.
            settings: Application settings. If None, uses default settings.
            transport_factory: Builds the transport; defaults to ``ImapTransport``.

        Raises:
            ConfigurationError: If an argument is empty or of the wrong type.
        """
        from inbox_watch.config import get_settings

        self.email = _require_text(email, "email")
        self._password = _require_text(password, "password")
        self.host = _require_text(host, "host")
        self.port = _require_port(port)
        self.settings = settings or get_settings()
        self._transport_factory = transport_factory or ImapTransport
        self._transport: ImapTransport | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport_factory: TransportFactory | None = None,
    ) -> MailSession:
        """Create a session from the ``imap_*`` settings."""
        return cls(
            settings.imap_email,
            settings.imap_password,
            settings.imap_host,
            settings.imap_port,
            settings=settings,
            transport_factory=transport_factory,
        )

    @property
    def connected(self) -> bool:
        return self._transport is not None

    async def __aenter__(self) -> MailSession:
        await self.login()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.logout()

    async def login(self) -> None:
        """Connect and authenticate. Does nothing when already logged in.

        Raises:
            MailConnectionError: If the server cannot be reached or drops
                the connection during login.
            AuthenticationError: If the credentials are rejected.
        """
        async with self._lock:
            if self._transport is not None:
                return

            transport = self._transport_factory(self.settings, self.host, self.port)
            await asyncio.to_thread(transport.connect)
            try:
                await asyncio.to_thread(transport.login, self.email, self._password)
            except (AuthenticationError, MailConnectionError):
                logger.error("imap_login_failed", user=self.email, host=self.host)
                await asyncio.to_thread(transport.logout)
                raise

            self._transport = transport
            logger.info("mail_session_started", user=self.email, host=self.host, port=self.port)

    async def logout(self) -> None:
        """Close the connection. Safe to call more than once."""
        async with self._lock:
            transport, self._transport = self._transport, None
            if transport is None:
                return
            await asyncio.to_thread(transport.logout)
            logger.info("mail_session_closed", user=self.email)

    async def read(self, header_filter: Mapping[Any, Any] | None) -> EmailRecord | None:
        """Return the most recent message matching ``header_filter``.

        Returns:
            The decoded message, or None if no message matches.

        Raises:
            NotConnectedError: If ``login()`` was not called.
            MailboxError: If the mailbox cannot be selected.
            SearchError: If the search fails.
            FetchError: If the message cannot be fetched.
        """
        criteria = SearchCriteria(header=self._translate(header_filter))
        logger.info("read_started", mailbox=self.settings.mailbox, headers=sorted(criteria.header))

        message = await self._fetch_latest(criteria, MESSAGE_ITEMS)
        if message is None:
            return None

        record = decode_message(message)
        logger.info("read_completed", uid=record.uid)
        return record

    def watch_for_new_message(
        self,
        header_filter: Mapping[Any, Any] | None,
        timeout_ms: int,
    ) -> asyncio.Task[EmailRecord]:
        """Start watching for a new matching message in the background.

        Must be called from a running event loop. The returned task resolves
        with the first message that arrives after this call, or fails with
        ``WatchTimeoutError`` once ``timeout_ms`` has elapsed. Selection and
        search errors fail the task immediately; fetch errors are retried.

        Args:
            header_filter: Header name to a value or list of values.
            timeout_ms: Timeout in milliseconds.

        Returns:
            Task producing the decoded ``EmailRecord``.
        """
        return asyncio.create_task(self._watch(header_filter, timeout_ms))

    async def _watch(self, header_filter: Mapping[Any, Any] | None, timeout_ms: int) -> EmailRecord:
        transport = self._require_transport()
        watcher = NewMessageWatcher(
            transport,
            self.settings.mailbox,
            poll_interval=self.settings.poll_interval_seconds,
            since_skew=self.settings.since_skew_seconds,
            lock=self._lock,
        )
        return await watcher.wait_for(self._translate(header_filter), timeout_ms)

    async def purge_older_than(self, cutoff_epoch_seconds: int | float) -> int:
        """Permanently delete messages received before the given Unix time.

        Args:
            cutoff_epoch_seconds: Cutoff as seconds since the epoch.

        Returns:
            Number of deleted messages.

        Raises:
            NotConnectedError: If ``login()`` was not called.
            PurgeStoreError: If flagging failed (nothing changed, safe to retry).
            PurgeExpungeError: If expunge failed after flagging.
        """
        transport = self._require_transport()
        cutoff = datetime.fromtimestamp(cutoff_epoch_seconds, tz=timezone.utc)
        async with self._lock:
            return await asyncio.to_thread(
                purge_older_than, transport, self.settings.mailbox, cutoff
            )

    async def read_body(self, header_filter: Mapping[Any, Any] | None) -> str | None:
        """Return only the decoded text body of the most recent match.

        Returns:
            The body, or None if nothing matched or the message has no text
            section.
        """
        criteria = SearchCriteria(header=self._translate(header_filter))
        message = await self._fetch_latest(criteria, (TEXT_PEEK,))
        if message is None or TEXT_SECTION not in message.sections:
            return None
        return decode_quoted_printable(message.sections[TEXT_SECTION])

    async def _fetch_latest(
        self, criteria: SearchCriteria, items: Sequence[str]
    ) -> RawMessage | None:
        transport = self._require_transport()
        async with self._lock:
            await asyncio.to_thread(transport.select_mailbox, self.settings.mailbox, True)
            ids = await asyncio.to_thread(transport.search, criteria)
            if not ids:
                logger.info("read_no_messages_found", mailbox=self.settings.mailbox)
                return None
            latest = max(ids)
            message = await asyncio.to_thread(transport.fetch_one, latest, items)

        if message is None:
            logger.warning("read_message_missing", uid=latest)
        return message

    def _translate(self, header_filter: Mapping[Any, Any] | None) -> dict[str, list[str]]:
        return normalize_header_filter(header_filter, strict=self.settings.strict_filters)

    def _require_transport(self) -> ImapTransport:
        if self._transport is None:
            raise NotConnectedError("Client not connected. Call login() first.")
        return self._transport


async def read_body_once(
    email: str,
    password: str,
    host: str,
    port: int,
    header_filter: Mapping[Any, Any] | None,
    settings: Settings | None = None,
    transport_factory: TransportFactory | None = None,
) -> str | None:
    """Log in, return the text body of the newest matching message and log out."""
    session = MailSession(
        email, password, host, port, settings=settings, transport_factory=transport_factory
    )
    async with session:
        return await session.read_body(header_filter)
