"""Tests for the mailbox range and query engine against an in-memory store."""

import pytest

from ai_over_email.config import ImapSettings
from ai_over_email.errors import (
    AuthError,
    ConfigError,
    ConnectError,
    FetchError,
    MoveError,
    SelectError,
    StoreError,
    ValidationError,
)
from ai_over_email.mailbox import DELETED_MAILBOX, MailboxClient
from ai_over_email.models import FetchedMessage, QueryWindow

from fakes import IMAP_SETTINGS, FakeMailServer, make_message


@pytest.fixture
def server():
    # Sequence order deliberately differs from delivery order
    return FakeMailServer(
        {
            "INBOX": [
                make_message(1, day=1, subject="Kickoff"),
                make_message(2, day=3, sender="bob@example.org", subject="Invoice 12", body=b"Amount due"),
                make_message(3, day=2, subject="Lunch"),
                make_message(4, day=5, subject="Invoice 13", body=b"Paid, thanks"),
                make_message(5, day=4, sender="carol@example.net", subject="Offsite"),
            ]
        }
    )


@pytest.fixture
def client(server):
    return MailboxClient(store_factory=server.factory)


def uids(records):
    return [record.uid for record in records]


class TestListMessages:
    def test_recent_window_is_sorted_newest_first(self, client, server):
        records = client.list_messages(QueryWindow.recent(3), IMAP_SETTINGS)

        # Sequence numbers 3..5 are fetched, then ordered by delivery date
        assert ("fetch_range", 3, 5) in server.calls
        assert uids(records) == [4, 5, 3]

    def test_window_larger_than_mailbox_returns_everything(self, client):
        records = client.list_messages(QueryWindow.recent(50), IMAP_SETTINGS)
        assert uids(records) == [4, 5, 2, 3, 1]

    def test_entire_mailbox(self, client, server):
        records = client.list_messages(QueryWindow.entire(), IMAP_SETTINGS)

        assert ("fetch_range", 1, 5) in server.calls
        assert len(records) == 5

    @pytest.mark.parametrize("count", [1, 2, 4, 5, 6])
    def test_result_length_never_exceeds_window(self, client, count):
        records = client.list_messages(QueryWindow.recent(count), IMAP_SETTINGS)

        assert len(records) == min(count, 5)
        dates = [record.received_at for record in records]
        assert dates == sorted(dates, reverse=True)

    def test_recent_two_of_three_out_of_order(self):
        server = FakeMailServer(
            {"INBOX": [make_message(1, day=1), make_message(3, day=3), make_message(2, day=2)]}
        )
        client = MailboxClient(store_factory=server.factory)

        records = client.list_messages(QueryWindow.recent(2), IMAP_SETTINGS)

        assert ("fetch_range", 2, 3) in server.calls
        assert uids(records) == [3, 2]

    def test_equal_dates_keep_fetch_order(self):
        server = FakeMailServer({"INBOX": [make_message(10, day=0), make_message(11, day=0), make_message(12, day=0)]})
        client = MailboxClient(store_factory=server.factory)

        records = client.list_messages(QueryWindow.entire(), IMAP_SETTINGS)

        assert uids(records) == [10, 11, 12]

    def test_empty_mailbox_returns_empty_list(self):
        server = FakeMailServer({"INBOX": []})
        client = MailboxClient(store_factory=server.factory)

        assert client.list_messages(QueryWindow.recent(10), IMAP_SETTINGS) == []
        assert "fetch_range" not in server.operations()
        assert server.operations()[-1] == "logout"

    def test_unparsable_entries_are_dropped(self):
        server = FakeMailServer(
            {"INBOX": [make_message(1, day=1), FetchedMessage(uid=2, text=b"no envelope"), make_message(3, day=2)]}
        )
        client = MailboxClient(store_factory=server.factory)

        assert uids(client.list_messages(QueryWindow.entire(), IMAP_SETTINGS)) == [3, 1]

    def test_session_is_read_only_and_released(self, client, server):
        client.list_messages(QueryWindow.recent(1), IMAP_SETTINGS)

        assert server.operations() == ["connect", "login", "select", "fetch_range", "logout"]
        assert ("select", "INBOX", True) in server.calls
        assert ("connect", "imap.example.com:993", "imap.example.com") in server.calls

    def test_selects_requested_mailbox(self):
        server = FakeMailServer({"INBOX": [], "Archive": [make_message(1, day=0)]})
        client = MailboxClient(store_factory=server.factory)
        settings = ImapSettings(server="imap.example.com", username="u", password="p", mailbox="Archive")

        assert uids(client.list_messages(QueryWindow.recent(5), settings)) == [1]

    def test_missing_credentials_never_connect(self, client, server):
        settings = ImapSettings(server="imap.example.com", username="u", password="")

        with pytest.raises(ConfigError):
            client.list_messages(QueryWindow.recent(5), settings)
        assert server.calls == []

    @pytest.mark.parametrize(
        "operation,error",
        [
            ("connect", ConnectError("failed to connect: refused")),
            ("login", AuthError("login failed: bad password")),
            ("select", SelectError("select mailbox failed: no such mailbox")),
        ],
    )
    def test_session_errors_propagate_and_release(self, client, server, operation, error):
        server.failures[operation] = error

        with pytest.raises(type(error)):
            client.list_messages(QueryWindow.recent(5), IMAP_SETTINGS)
        assert server.operations()[-1] == "logout"

    def test_fetch_failure_returns_no_partial_results(self, client, server):
        server.failures["fetch_range"] = StoreError("fetch failed: connection reset")

        with pytest.raises(FetchError, match="connection reset"):
            client.list_messages(QueryWindow.recent(5), IMAP_SETTINGS)
        assert server.operations()[-1] == "logout"


class TestSearch:
    def test_matches_across_whole_mailbox(self, client):
        assert uids(client.search("invoice", 0, IMAP_SETTINGS)) == [4, 2]

    def test_all_terms_must_match(self, client):
        assert uids(client.search("invoice due", 0, IMAP_SETTINGS)) == [2]

    def test_matches_sender(self, client):
        assert uids(client.search("CAROL", 10, IMAP_SETTINGS)) == [5]

    def test_limit_truncates_after_ordering(self, client):
        assert uids(client.search("example", 2, IMAP_SETTINGS)) == [4, 5]

    def test_no_matches(self, client):
        assert client.search("nonexistent", 10, IMAP_SETTINGS) == []

    def test_empty_mailbox_search_is_empty(self):
        server = FakeMailServer({"INBOX": []})
        client = MailboxClient(store_factory=server.factory)

        assert client.search("anything", 10, IMAP_SETTINGS) == []

    @pytest.mark.parametrize("query", ["", "   \t"])
    def test_blank_query_is_rejected_before_connecting(self, client, server, query):
        with pytest.raises(ValidationError, match="query is required"):
            client.search(query, 10, IMAP_SETTINGS)
        assert server.calls == []


class TestMoveToMailbox:
    def test_moves_batch_and_creates_destination(self, client, server):
        moved = client.move_to_mailbox([2, 4], DELETED_MAILBOX, IMAP_SETTINGS)

        assert moved == 2
        assert ("select", "INBOX", False) in server.calls
        assert ("create_mailbox", DELETED_MAILBOX) in server.calls
        assert ("move", [2, 4], DELETED_MAILBOX) in server.calls
        assert [m.uid for m in server.mailboxes[DELETED_MAILBOX]] == [2, 4]
        assert server.operations()[-1] == "logout"

    def test_existing_destination_is_not_an_error(self, client, server):
        server.mailboxes[DELETED_MAILBOX] = []

        assert client.move_to_mailbox([1], DELETED_MAILBOX, IMAP_SETTINGS) == 1
        assert [m.uid for m in server.mailboxes[DELETED_MAILBOX]] == [1]

    def test_create_failure_is_a_move_error(self, client, server):
        server.failures["create_mailbox"] = StoreError("create mailbox failed: [NOPERM]")

        with pytest.raises(MoveError, match="NOPERM"):
            client.move_to_mailbox([1], DELETED_MAILBOX, IMAP_SETTINGS)
        assert "move" not in server.operations()

    def test_rejected_batch_moves_nothing(self, client, server):
        with pytest.raises(MoveError):
            client.move_to_mailbox([1, 99], DELETED_MAILBOX, IMAP_SETTINGS)

        assert len(server.mailboxes["INBOX"]) == 5
        assert server.mailboxes[DELETED_MAILBOX] == []
        assert server.operations()[-1] == "logout"

    def test_non_positive_uids_are_filtered(self, client, server):
        assert client.move_to_mailbox([0, -1, 3], DELETED_MAILBOX, IMAP_SETTINGS) == 1
        assert ("move", [3], DELETED_MAILBOX) in server.calls

    def test_empty_uids_is_a_no_op(self, client, server):
        assert client.move_to_mailbox([], DELETED_MAILBOX, IMAP_SETTINGS) == 0
        assert client.move_to_mailbox([0, -5], DELETED_MAILBOX, IMAP_SETTINGS) == 0
        assert server.calls == []

    def test_destination_is_required(self, client):
        with pytest.raises(ValidationError, match="destination mailbox is required"):
            client.move_to_mailbox([1], "", IMAP_SETTINGS)

    def test_empty_mailbox_moves_nothing(self):
        server = FakeMailServer({"INBOX": []})
        client = MailboxClient(store_factory=server.factory)

        assert client.move_to_mailbox([1, 2], DELETED_MAILBOX, IMAP_SETTINGS) == 0
        assert "create_mailbox" not in server.operations()
        assert "move" not in server.operations()


def test_every_call_opens_its_own_session(client, server):
    client.list_messages(QueryWindow.recent(1), IMAP_SETTINGS)
    client.search("lunch", 5, IMAP_SETTINGS)
    client.move_to_mailbox([1], DELETED_MAILBOX, IMAP_SETTINGS)

    assert len(server.sessions) == 3
    assert all(store.logged_out for store in server.sessions)
