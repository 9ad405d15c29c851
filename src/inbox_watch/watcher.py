"""Polling watcher that waits for a new message matching a header filter.

IMAP IDLE is not used. Each iteration selects the mailbox read-only, searches
for matches that arrived since the watch started and looks at the newest id
only. Ids that turned out not to be new are remembered for the rest of the
watch and never fetched again.

Notes:
    Only the highest id is evaluated on each poll. When several matching
    messages arrive between two polls, the older ones are never reported.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from inbox_watch.criteria import SearchCriteria, SearchFilter
from inbox_watch.decoder import decode_message, ensure_aware
from inbox_watch.exceptions import FetchError, WatchTimeoutError
from inbox_watch.models import EmailRecord
from inbox_watch.transport import MESSAGE_ITEMS, ImapTransport

logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_SINCE_SKEW = 1.0


@dataclass
class PollingSession:
    """State of one watch call."""

    start_time: datetime
    search_since: datetime
    timeout_ms: int
    poll_interval: float
    started_at: float
    skipped: set[int] = field(default_factory=set)
    iteration: int = 0

    @classmethod
    def begin(cls, timeout_ms: int, poll_interval: float, since_skew: float) -> PollingSession:
        start_time = datetime.now(timezone.utc)
        return cls(
            start_time=start_time,
            search_since=start_time - timedelta(seconds=since_skew),
            timeout_ms=timeout_ms,
            poll_interval=poll_interval,
            started_at=time.monotonic(),
        )

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def timed_out(self) -> bool:
        return self.elapsed * 1000 >= self.timeout_ms

    def skip(self, msgid: int) -> None:
        self.skipped.add(msgid)


class NewMessageWatcher:
    """Waits for a message that arrives after the watch started.

    Each iteration holds ``lock`` while it talks to the server and releases
    it while sleeping, so other operations on the same connection can run in
    between.
    """

    def __init__(
        self,
        transport: ImapTransport,
        mailbox: str = "INBOX",
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        since_skew: float = DEFAULT_SINCE_SKEW,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.transport = transport
        self.mailbox = mailbox
        self.poll_interval = poll_interval
        self.since_skew = since_skew
        self._lock = lock or asyncio.Lock()

    async def wait_for(self, header_filter: SearchFilter, timeout_ms: int) -> EmailRecord:
        """Poll until a new matching message arrives.

        Args:
            header_filter: Normalized header filter.
            timeout_ms: How long to wait, in milliseconds.

        Returns:
            The decoded new message.

        Raises:
            WatchTimeoutError: If nothing new arrived within ``timeout_ms``.
            MailboxError: If the mailbox cannot be selected.
            SearchError: If a search fails.
        """

        session = PollingSession.begin(timeout_ms, self.poll_interval, self.since_skew)
        logger.info(
            "watch_started",
            mailbox=self.mailbox,
            timeout_ms=timeout_ms,
            poll_interval=self.poll_interval,
            headers=sorted(header_filter),
        )

        while True:
            session.iteration += 1
            if session.timed_out():
                logger.info(
                    "watch_timed_out",
                    iterations=session.iteration,
                    elapsed=round(session.elapsed, 3),
                    timeout_ms=timeout_ms,
                )
                raise WatchTimeoutError(timeout_ms)

            try:
                async with self._lock:
                    record = await asyncio.to_thread(self.poll_once, session, header_filter)
            except Exception as exc:
                logger.error("watch_failed", iteration=session.iteration, error=str(exc))
                raise

            if record is not None:
                logger.info("watch_resolved", uid=record.uid, iterations=session.iteration)
                return record

            await asyncio.sleep(session.poll_interval)

    def poll_once(self, session: PollingSession, header_filter: SearchFilter) -> EmailRecord | None:
        """Run one search/fetch/evaluate round.

        Returns the decoded message when a new one was found, ``None`` when
        polling should continue. Mailbox and search errors propagate.
        """

        logger.debug("watch_iteration", iteration=session.iteration, elapsed=round(session.elapsed, 3))

        self.transport.select_mailbox(self.mailbox, readonly=True)
        ids = self.transport.search(SearchCriteria(header=header_filter, since=session.search_since))
        if not ids:
            return None

        latest = max(ids)
        if latest in session.skipped:
            logger.debug("watch_skipping_id", uid=latest)
            return None

        try:
            message = self.transport.fetch_one(latest, MESSAGE_ITEMS)
        except FetchError as exc:
            logger.warning("watch_fetch_failed", uid=latest, error=str(exc))
            return None

        if message is None or message.internal_date is None:
            logger.info("watch_message_unusable", uid=latest)
            session.skip(latest)
            return None

        if ensure_aware(message.internal_date) <= session.start_time:
            logger.info(
                "watch_message_not_new",
                uid=latest,
                internal_date=message.internal_date.isoformat(),
                start_time=session.start_time.isoformat(),
            )
            session.skip(latest)
            return None

        return decode_message(message)
