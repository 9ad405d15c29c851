"""Decoding of fetched messages into ``EmailRecord`` values."""

from __future__ import annotations

import email.header
import quopri
import re
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog

from inbox_watch.exceptions import DecodeError
from inbox_watch.models import Address, EmailRecord, HeaderValue, RawMessage

logger = structlog.get_logger()

HEADER_SECTION = "HEADER"
TEXT_SECTION = "TEXT"

_LINE_BREAK = re.compile(r"\r?\n")


def format_address(address: Address) -> str | None:
    """Format an envelope address as ``mailbox@host``, or ``mailbox`` alone."""
    if address.mailbox and address.host:
        return f"{address.mailbox}@{address.host}"
    if address.mailbox:
        return address.mailbox
    return None


def format_addresses(addresses: Iterable[Address]) -> list[str]:
    formatted = (format_address(address) for address in addresses)
    return [value for value in formatted if value]


def decode_header_value(value: str | None) -> str:
    if not value:
        return ""
    decoded_fragments = []
    for fragment, encoding in email.header.decode_header(value):
        if isinstance(fragment, bytes):
            try:
                decoded_fragments.append(fragment.decode(encoding or "utf-8", errors="replace"))
            except LookupError:
                decoded_fragments.append(fragment.decode("utf-8", errors="replace"))
        else:
            decoded_fragments.append(fragment)
    return "".join(decoded_fragments).strip()


def decode_quoted_printable(data: bytes) -> str:
    return quopri.decodestring(data).decode("utf-8", errors="replace")


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_timestamp(value: datetime | None) -> tuple[str | None, int | None]:
    """Return the ISO-8601 string and epoch seconds for a date, or two Nones."""
    if value is None:
        return None, None
    aware = ensure_aware(value)
    return aware.replace(microsecond=0).isoformat(), int(aware.timestamp())


def _store_header(headers: dict[str, HeaderValue], name: str, value: str) -> None:
    existing = headers.get(name)
    if existing is None:
        headers[name] = value
    elif isinstance(existing, list):
        existing.append(value)
    else:
        headers[name] = [existing, value]


def parse_header_block(raw: bytes | str) -> dict[str, HeaderValue]:
    """Parse a raw header block into a lowercased name to value(s) mapping.

    Lines indented with a space or tab continue the previous header and are
    joined with a single space. Parsing stops at the first blank line. A
    header seen more than once maps to a list of its values in order.
    Lines that are neither headers nor continuations are skipped.
    """

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    headers: dict[str, HeaderValue] = {}
    current_name: str | None = None
    current_value = ""

    for line in _LINE_BREAK.split(text):
        if line == "":
            break
        if line[0] in " \t":
            if current_name is not None:
                current_value = f"{current_value} {line.strip()}"
            continue
        if ":" not in line:
            continue

        if current_name is not None:
            _store_header(headers, current_name, current_value)

        name, value = line.split(":", 1)
        current_name = name.strip().lower() or None
        current_value = value.strip()

    if current_name is not None:
        _store_header(headers, current_name, current_value)

    return headers


def decode_message(message: RawMessage) -> EmailRecord:
    """Decode a fetched message.

    Missing parts of the message leave the matching fields unset; only a
    value that is not a ``RawMessage`` at all is an error.

    Raises:
        DecodeError: If ``message`` is not a ``RawMessage``.
    """

    if not isinstance(message, RawMessage):
        raise DecodeError(f"cannot decode {type(message).__name__}, expected RawMessage")

    fields: dict[str, object] = {"uid": message.seq}

    envelope = message.envelope
    if envelope is not None:
        fields["subject"] = decode_header_value(envelope.subject)

        senders = format_addresses(envelope.from_)
        if len(senders) == 1:
            fields["from_"] = senders[0]
        elif senders:
            fields["from_"] = senders

        for name in ("to", "cc", "bcc"):
            addresses = format_addresses(getattr(envelope, name))
            if addresses:
                fields[name] = addresses

        fields["date"], fields["date_timestamp"] = format_timestamp(envelope.date)

    fields["internal_date"], fields["internal_date_timestamp"] = format_timestamp(
        message.internal_date
    )

    text = message.sections.get(TEXT_SECTION)
    if text is not None:
        fields["body"] = decode_quoted_printable(text)

    header_block = message.sections.get(HEADER_SECTION)
    if header_block:
        headers = parse_header_block(header_block)
        if headers:
            fields["headers"] = headers
        else:
            logger.debug("header_block_empty", uid=message.seq)

    return EmailRecord(**fields)
