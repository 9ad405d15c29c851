"""inbox-watch - wait for new IMAP messages and purge old ones.

This package watches a single mailbox for a newly arrived message matching a
set of header filters, reads the most recent match, and deletes messages older
than a cutoff, all over one IMAP session.
"""

__version__ = "0.1.0"

from inbox_watch.config import Settings, get_settings
from inbox_watch.log import configure_logging
from inbox_watch.models import EmailRecord
from inbox_watch.session import MailSession, read_body_once

__all__ = [
    "EmailRecord",
    "MailSession",
    "Settings",
    "configure_logging",
    "get_settings",
    "read_body_once",
    "__version__",
]
