"""Data models for inbox-watch.

``RawMessage`` and its parts are what the transport hands over after a fetch;
``EmailRecord`` is the decoded, caller-facing result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

HeaderValue = Union[str, list[str]]


@dataclass(frozen=True)
class Address:
    """One envelope address."""

    name: str | None = None
    mailbox: str | None = None
    host: str | None = None


@dataclass(frozen=True)
class Envelope:
    """Envelope metadata as returned by the server."""

    subject: str | None = None
    from_: tuple[Address, ...] = ()
    to: tuple[Address, ...] = ()
    cc: tuple[Address, ...] = ()
    bcc: tuple[Address, ...] = ()
    date: datetime | None = None


@dataclass(frozen=True)
class RawMessage:
    """A single fetched message.

    ``sections`` maps a body section name (``"HEADER"``, ``"TEXT"``) to the
    raw bytes the server returned for it.
    """

    seq: int
    envelope: Envelope | None = None
    internal_date: datetime | None = None
    sections: dict[str, bytes] = field(default_factory=dict)


class EmailRecord(BaseModel):
    """Decoded email message.

    Absent fields are ``None`` and are left out of ``to_dict()``. Date fields
    always come in pairs: the ISO-8601 string and its epoch-seconds value.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    subject: str | None = Field(default=None, description="Envelope subject")
    from_: HeaderValue | None = Field(
        default=None,
        alias="from",
        description="Sender address, a list when the envelope has several",
    )
    to: list[str] | None = Field(default=None, description="To addresses")
    cc: list[str] | None = Field(default=None, description="Cc addresses")
    bcc: list[str] | None = Field(default=None, description="Bcc addresses")

    date: str | None = Field(default=None, description="Sender-stated date, ISO-8601")
    date_timestamp: int | None = Field(
        default=None, alias="dateTimestamp", description="Sender-stated date, epoch seconds"
    )
    internal_date: str | None = Field(
        default=None, alias="internalDate", description="Server arrival time, ISO-8601"
    )
    internal_date_timestamp: int | None = Field(
        default=None,
        alias="internalDateTimestamp",
        description="Server arrival time, epoch seconds",
    )

    body: str | None = Field(default=None, description="Decoded text section")
    headers: dict[str, HeaderValue] | None = Field(
        default=None, description="Lowercased header name to value(s)"
    )
    uid: int = Field(description="Transport id of the message (UID or sequence number)")

    def to_dict(self) -> dict[str, Any]:
        """Return the record as a plain mapping with absent fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)
