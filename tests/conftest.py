"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from inbox_watch.models import Address, Envelope, RawMessage


class FakeTransport:
    """In-memory stand-in for ``ImapTransport``.

    ``search_results`` is consumed one entry per search; the last entry keeps
    being returned. ``errors`` maps an operation name to an exception, or to a
    list of exceptions raised one per call until the list is empty.
    """

    def __init__(self, settings: Any = None, host: str = "imap.test", port: int = 993) -> None:
        self.settings = settings
        self.host = host
        self.port = port
        self.calls: list[tuple[Any, ...]] = []
        self.search_results: list[list[int]] = []
        self.messages: dict[int, RawMessage] = {}
        self.errors: dict[str, Exception | list[Exception]] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        error = self.errors.get(name)
        if isinstance(error, list):
            if error:
                raise error.pop(0)
        elif error is not None:
            raise error

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def connect(self) -> None:
        self._record("connect")

    def login(self, user: str, password: str) -> None:
        self._record("login", user, password)

    def select_mailbox(self, name: str, readonly: bool) -> None:
        self._record("select_mailbox", name, readonly)

    def search(self, criteria: Any) -> list[int]:
        self._record("search", criteria)
        if len(self.search_results) > 1:
            return list(self.search_results.pop(0))
        return list(self.search_results[0]) if self.search_results else []

    def fetch_one(self, msgid: int, items: Any = None) -> RawMessage | None:
        self._record("fetch_one", msgid, tuple(items or ()))
        return self.messages.get(msgid)

    def add_deleted_flag(self, ids: list[int]) -> None:
        self._record("add_deleted_flag", list(ids))

    def expunge(self) -> None:
        self._record("expunge")

    def logout(self) -> None:
        self._record("logout")


@pytest.fixture
def settings():
    """Provide settings with a fast poll interval for testing."""
    from inbox_watch.config import Settings

    return Settings(
        imap_host="imap.test",
        imap_port=993,
        imap_email="watcher@example.test",
        imap_password="app-password",
        poll_interval_seconds=0.01,
        since_skew_seconds=1.0,
        log_level="DEBUG",
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def transport_factory(fake_transport: FakeTransport) -> Callable[..., FakeTransport]:
    def factory(settings: Any, host: str, port: int) -> FakeTransport:
        fake_transport.settings = settings
        fake_transport.host = host
        fake_transport.port = port
        return fake_transport

    return factory


@pytest.fixture
def sample_header_block() -> bytes:
    """Provide a raw header block with a folded subject and a repeated header."""
    return (
        b"Return-Path: <alerts@example.test>\r\n"
        b"Subject: Your verification\r\n"
        b"  code is ready\r\n"
        b"From: Alerts <alerts@example.test>\r\n"
        b"X-Test: first\r\n"
        b"X-Test: second\r\n"
        b"\r\n"
    )


@pytest.fixture
def make_raw_message(sample_header_block: bytes) -> Callable[..., RawMessage]:
    """Build ``RawMessage`` values with sensible defaults."""

    def build(
        seq: int = 1,
        *,
        internal_date: datetime | None = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc),
        subject: str = "Your verification code is ready",
        from_: tuple[Address, ...] = (Address(name="Alerts", mailbox="alerts", host="example.test"),),
        to: tuple[Address, ...] = (Address(mailbox="watcher", host="example.test"),),
        date: datetime | None = datetime(2024, 5, 1, 11, 59, 58, tzinfo=timezone.utc),
        body: bytes | None = b"Your code is 12=3D34",
        header_block: bytes | None = None,
        with_envelope: bool = True,
    ) -> RawMessage:
        sections: dict[str, bytes] = {"HEADER": header_block or sample_header_block}
        if body is not None:
            sections["TEXT"] = body
        envelope = None
        if with_envelope:
            envelope = Envelope(subject=subject, from_=from_, to=to, date=date)
        return RawMessage(seq=seq, envelope=envelope, internal_date=internal_date, sections=sections)

    return build
