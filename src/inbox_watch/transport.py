"""IMAP transport built on ``imapclient``.

Every method is a blocking round trip to the server. The session layer runs
them through ``asyncio.to_thread`` and never issues two at the same time.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import structlog
from imapclient import DELETED, IMAPClient
from imapclient.exceptions import IMAPClientError

from inbox_watch.config import Settings
from inbox_watch.criteria import SearchCriteria
from inbox_watch.exceptions import (
    AuthenticationError,
    ExpungeError,
    FetchError,
    MailboxError,
    MailConnectionError,
    NotConnectedError,
    SearchError,
    StoreError,
)
from inbox_watch.models import Address, Envelope, RawMessage

logger = structlog.get_logger()

ENVELOPE = "ENVELOPE"
INTERNALDATE = "INTERNALDATE"
HEADER_PEEK = "BODY.PEEK[HEADER]"
TEXT_PEEK = "BODY.PEEK[TEXT]"

MESSAGE_ITEMS = (ENVELOPE, INTERNALDATE, HEADER_PEEK, TEXT_PEEK)
SEARCH_CHARSET = "UTF-8"

_TRANSPORT_ERRORS = (IMAPClientError, OSError)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _addresses(values: Iterable[Any] | None) -> tuple[Address, ...]:
    if not values:
        return ()
    return tuple(
        Address(name=_text(a.name), mailbox=_text(a.mailbox), host=_text(a.host)) for a in values
    )


def convert_envelope(envelope: Any) -> Envelope | None:
    """Copy an ``imapclient`` envelope into an ``Envelope``."""
    if envelope is None:
        return None
    return Envelope(
        subject=_text(envelope.subject),
        from_=_addresses(envelope.from_),
        to=_addresses(envelope.to),
        cc=_addresses(envelope.cc),
        bcc=_addresses(envelope.bcc),
        date=envelope.date,
    )


def convert_fetch_response(msgid: int, data: dict[bytes, Any]) -> RawMessage:
    """Build a ``RawMessage`` from one entry of an ``IMAPClient.fetch`` result."""
    sections: dict[str, bytes] = {}
    for key, value in data.items():
        name = _text(key) or ""
        if name.startswith("BODY[") and name.endswith("]") and isinstance(value, bytes):
            sections[name[5:-1]] = value

    return RawMessage(
        seq=msgid,
        envelope=convert_envelope(data.get(b"ENVELOPE")),
        internal_date=data.get(b"INTERNALDATE"),
        sections=sections,
    )


class ImapTransport:
    """A single IMAP connection with typed operations."""

    def __init__(self, settings: Settings, host: str, port: int) -> None:
        self.settings = settings
        self.host = host
        self.port = port
        self._client: IMAPClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Open the connection.

        Raises:
            MailConnectionError: If the server cannot be reached.
        """
        logger.info("imap_connecting", host=self.host, port=self.port, ssl=self.settings.imap_ssl)
        try:
            client = IMAPClient(
                self.host,
                port=self.port,
                use_uid=self.settings.imap_use_uid,
                ssl=self.settings.imap_ssl,
                timeout=self.settings.imap_timeout,
            )
        except _TRANSPORT_ERRORS as exc:
            logger.error("imap_connect_failed", host=self.host, port=self.port, error=str(exc))
            raise MailConnectionError(f"cannot connect to {self.host}:{self.port}: {exc}") from exc

        # Keep server timezones so arrival times compare correctly.
        client.normalise_times = False
        self._client = client

    def login(self, user: str, password: str) -> None:
        """Authenticate the connection.

        Raises:
            AuthenticationError: If the server rejects the credentials.
            MailConnectionError: If the connection fails during login.
        """
        client = self._require_client()
        try:
            client.login(user, password)
        except IMAPClientError as exc:
            raise AuthenticationError(f"login failed for {user}: {exc}") from exc
        except OSError as exc:
            logger.error("imap_login_connection_lost", host=self.host, error=str(exc))
            raise MailConnectionError(f"connection lost during login to {self.host}: {exc}") from exc
        logger.info("imap_logged_in", user=user)

    def select_mailbox(self, name: str, readonly: bool) -> None:
        client = self._require_client()
        try:
            client.select_folder(name, readonly=readonly)
        except _TRANSPORT_ERRORS as exc:
            raise MailboxError(f"error selecting {name}: {exc}") from exc

    def search(self, criteria: SearchCriteria) -> list[int]:
        client = self._require_client()
        try:
            return list(client.search(criteria.to_imap(), charset=SEARCH_CHARSET))
        except _TRANSPORT_ERRORS as exc:
            raise SearchError(f"error searching emails: {exc}") from exc

    def fetch(self, ids: Sequence[int], items: Sequence[str] = MESSAGE_ITEMS) -> list[RawMessage]:
        client = self._require_client()
        try:
            response = client.fetch(list(ids), list(items))
        except _TRANSPORT_ERRORS as exc:
            raise FetchError(f"error fetching {list(ids)}: {exc}") from exc
        return [convert_fetch_response(msgid, data) for msgid, data in sorted(response.items())]

    def fetch_one(self, msgid: int, items: Sequence[str] = MESSAGE_ITEMS) -> RawMessage | None:
        """Fetch a single message; ``None`` when the server returned nothing for it."""
        for message in self.fetch([msgid], items):
            if message.seq == msgid:
                return message
        return None

    def add_deleted_flag(self, ids: Sequence[int]) -> None:
        client = self._require_client()
        try:
            client.add_flags(list(ids), [DELETED], silent=True)
        except _TRANSPORT_ERRORS as exc:
            raise StoreError(f"error marking emails as deleted: {exc}") from exc

    def expunge(self) -> None:
        client = self._require_client()
        try:
            client.expunge()
        except _TRANSPORT_ERRORS as exc:
            raise ExpungeError(f"error expunging emails: {exc}") from exc

    def logout(self) -> None:
        """Close the connection. Errors while logging out are logged, not raised."""
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.logout()
        except _TRANSPORT_ERRORS as exc:
            logger.warning("imap_logout_failed", error=str(exc))

    def _require_client(self) -> IMAPClient:
        if self._client is None:
            raise NotConnectedError("Client not connected. Call login() first.")
        return self._client
