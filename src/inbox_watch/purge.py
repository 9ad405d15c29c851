"""Deletion of messages older than a cutoff."""

from __future__ import annotations

from datetime import datetime

import structlog

from inbox_watch.criteria import SearchCriteria
from inbox_watch.exceptions import ExpungeError, PurgeExpungeError, PurgeStoreError, StoreError
from inbox_watch.transport import ImapTransport

logger = structlog.get_logger()


def purge_older_than(transport: ImapTransport, mailbox: str, cutoff: datetime) -> int:
    """Flag and expunge every message that arrived before ``cutoff``.

    The mailbox is selected read-write. Matching uses the server arrival time
    (IMAP ``BEFORE``). Deletion is two-phase: all matches are flagged
    ``\\Deleted`` first, then one expunge removes them.

    Args:
        transport: Connected transport.
        mailbox: Mailbox to purge.
        cutoff: Messages received before this instant are removed.

    Returns:
        Number of messages marked for deletion; 0 when nothing matched.

    Raises:
        MailboxError: If the mailbox cannot be selected.
        SearchError: If the search fails.
        PurgeStoreError: If flagging fails; expunge is not attempted.
        PurgeExpungeError: If expunge fails after flagging; messages stay
            flagged on the server.
    """

    transport.select_mailbox(mailbox, readonly=False)

    ids = transport.search(SearchCriteria(before=cutoff))
    if not ids:
        logger.info("purge_nothing_to_delete", mailbox=mailbox, cutoff=cutoff.isoformat())
        return 0

    logger.info("purge_marking_deleted", mailbox=mailbox, count=len(ids), cutoff=cutoff.isoformat())
    try:
        transport.add_deleted_flag(ids)
    except StoreError as exc:
        logger.error("purge_mark_failed", mailbox=mailbox, count=len(ids), error=str(exc))
        raise PurgeStoreError(str(exc)) from exc

    try:
        transport.expunge()
    except ExpungeError as exc:
        logger.error(
            "purge_expunge_failed",
            mailbox=mailbox,
            flagged_count=len(ids),
            error=str(exc),
        )
        raise PurgeExpungeError(str(exc), flagged_count=len(ids)) from exc

    logger.info("purge_completed", mailbox=mailbox, deleted=len(ids))
    return len(ids)
