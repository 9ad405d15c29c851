"""Translation of loosely typed header filters into IMAP search criteria."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from inbox_watch.exceptions import FilterValidationError

logger = structlog.get_logger()

SearchFilter = dict[str, list[str]]


def normalize_header_filter(raw: Mapping[Any, Any] | None, *, strict: bool = False) -> SearchFilter:
    """Normalize a header filter to ``{name: [value, ...]}``.

    A string value becomes a one-element list and lists keep their string
    elements in order. Keys left without any value are dropped, as are values
    of any other shape.

    Args:
        raw: Mapping of header name to a string or a list of strings.
        strict: Raise instead of silently dropping malformed entries.

    Returns:
        The normalized filter; every value list is non-empty.

    Raises:
        FilterValidationError: In strict mode, for a non-string key, a
            non-string list element or an unsupported value shape.
    """

    result: SearchFilter = {}
    if not raw:
        return result

    for key, value in raw.items():
        if not isinstance(key, str):
            if strict:
                raise FilterValidationError(f"header name must be a string, got {key!r}")
            logger.debug("header_filter_key_ignored", key=repr(key))
            continue

        if isinstance(value, str):
            result[key] = [value]
        elif isinstance(value, (list, tuple)):
            values = [item for item in value if isinstance(item, str)]
            if strict and len(values) != len(value):
                raise FilterValidationError(f"header {key!r} contains non-string values")
            if values:
                result[key] = values
            else:
                logger.debug("header_filter_key_dropped", key=key, reason="no string values")
        else:
            if strict:
                raise FilterValidationError(
                    f"header {key!r} must be a string or a list of strings, "
                    f"got {type(value).__name__}"
                )
            logger.debug("header_filter_key_dropped", key=key, value_type=type(value).__name__)

    return result


def _header_terms(name: str, values: list[str]) -> list[Any]:
    # IMAP OR is binary: OR a (OR b c)
    # Names and values go out as UTF-8 bytes, which imapclient sends unchanged
    # at any nesting depth.
    encoded_name = name.encode("utf-8")
    term: list[Any] = ["HEADER", encoded_name, values[-1].encode("utf-8")]
    for value in reversed(values[:-1]):
        term = ["OR", ["HEADER", encoded_name, value.encode("utf-8")], term]
    return term


@dataclass(frozen=True)
class SearchCriteria:
    """Criteria for a single SEARCH command.

    Values of one header are alternatives; separate headers and the date
    bounds must all match. ``since`` and ``before`` compare against the
    internal date at day granularity on the server side.
    """

    header: SearchFilter = field(default_factory=dict)
    since: datetime | None = None
    before: datetime | None = None

    def to_imap(self) -> list[Any]:
        """Render the criteria in ``imapclient`` nested-list form.

        Header names and values are UTF-8 encoded; search with
        ``charset="UTF-8"``.
        """
        criteria: list[Any] = []
        for name, values in self.header.items():
            if not values:
                continue
            term = _header_terms(name, values)
            if term[0] == "OR":
                criteria.append(term)
            else:
                criteria.extend(term)
        if self.since is not None:
            criteria.extend(["SINCE", self.since.astimezone().date()])
        if self.before is not None:
            criteria.extend(["BEFORE", self.before.astimezone().date()])
        return criteria or ["ALL"]
