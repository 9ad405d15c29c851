"""Unit tests for purging messages by age."""

from datetime import datetime, timezone

import pytest

from inbox_watch.exceptions import (
    ExpungeError,
    PurgeExpungeError,
    PurgePhase,
    PurgeStoreError,
    SearchError,
    StoreError,
)
from inbox_watch.purge import purge_older_than

CUTOFF = datetime(2024, 5, 1, tzinfo=timezone.utc)


class TestPurgeOlderThan:
    """Test suite for purge_older_than."""

    def test_flags_then_expunges_matches(self, fake_transport) -> None:
        fake_transport.search_results = [[5, 7]]

        count = purge_older_than(fake_transport, "INBOX", CUTOFF)

        assert count == 2
        assert fake_transport.names() == ["select_mailbox", "search", "add_deleted_flag", "expunge"]
        assert ("add_deleted_flag", [5, 7]) in fake_transport.calls
        assert fake_transport.count("add_deleted_flag") == 1
        assert fake_transport.count("expunge") == 1

    def test_selects_read_write_and_searches_before_cutoff(self, fake_transport) -> None:
        fake_transport.search_results = [[1]]

        purge_older_than(fake_transport, "Archive", CUTOFF)

        assert fake_transport.calls[0] == ("select_mailbox", "Archive", False)
        criteria = fake_transport.calls[1][1]
        assert criteria.before == CUTOFF
        assert criteria.since is None
        assert criteria.header == {}

    def test_nothing_to_purge(self, fake_transport) -> None:
        fake_transport.search_results = [[]]

        assert purge_older_than(fake_transport, "INBOX", CUTOFF) == 0
        assert fake_transport.count("add_deleted_flag") == 0
        assert fake_transport.count("expunge") == 0

    def test_mark_failure_skips_expunge(self, fake_transport) -> None:
        fake_transport.search_results = [[5, 7]]
        fake_transport.errors["add_deleted_flag"] = StoreError("NO STORE failed")

        with pytest.raises(PurgeStoreError) as exc_info:
            purge_older_than(fake_transport, "INBOX", CUTOFF)

        assert exc_info.value.phase is PurgePhase.MARK
        assert exc_info.value.flagged_count == 0
        assert fake_transport.count("expunge") == 0

    def test_expunge_failure_reports_flagged_messages(self, fake_transport) -> None:
        fake_transport.search_results = [[5, 7]]
        fake_transport.errors["expunge"] = ExpungeError("server busy")

        with pytest.raises(PurgeExpungeError) as exc_info:
            purge_older_than(fake_transport, "INBOX", CUTOFF)

        assert exc_info.value.phase is PurgePhase.EXPUNGE
        assert exc_info.value.flagged_count == 2
        assert isinstance(exc_info.value, ExpungeError)

    def test_search_failure_propagates(self, fake_transport) -> None:
        fake_transport.errors["search"] = SearchError("BAD")

        with pytest.raises(SearchError):
            purge_older_than(fake_transport, "INBOX", CUTOFF)

        assert fake_transport.count("add_deleted_flag") == 0
