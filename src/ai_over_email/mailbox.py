"""Mailbox range and query engine.

Translates "most recent N", "entire mailbox", free-text search and
identifier-based moves into bounded mail store operations. Every call opens
its own session and closes it on every exit path; nothing is cached between
calls.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Sequence, Tuple

from .config import ImapSettings
from .errors import FetchError, MailboxExistsError, MoveError, StoreError, ValidationError
from .mail_store import ImapMailStore, MailStore
from .models import MessageRecord, QueryWindow, SearchFilter

# Soft delete destination used by the delete tool
DELETED_MAILBOX = "DELETED_BY_MCP"


class MailboxClient:
    """Read, search and move messages in one remote mailbox.

    Attributes:
        store_factory: Callable returning a fresh, unconnected MailStore for
            each call
    """

    def __init__(self, store_factory: Callable[[], MailStore] = ImapMailStore) -> None:
        self.store_factory = store_factory

    @contextmanager
    def open_session(self, settings: ImapSettings, readonly: bool = True) -> Iterator[Tuple[MailStore, int]]:
        """Connect, log in and select the configured mailbox.

        Yields:
            The live store and the selected mailbox's message count

        Raises:
            ConfigError: If server, username or password is empty
            ConnectError: If the store cannot be reached
            AuthError: If the credentials are rejected
            SelectError: If the mailbox cannot be selected
        """
        settings.validate()

        store = self.store_factory()
        try:
            store.connect(settings.address, settings.host)
            store.login(settings.username, settings.password)
            total = store.select(settings.mailbox, readonly=readonly)
            yield store, total
        finally:
            store.logout()

    def list_messages(self, window: QueryWindow, settings: ImapSettings) -> List[MessageRecord]:
        """Return the messages in ``window``, most recent first.

        Args:
            window: Most recent N, or the entire mailbox
            settings: Resolved store settings for this call

        Returns:
            Records sorted by received_at descending; at most N for a
            most-recent window
        """
        with self.open_session(settings, readonly=True) as (store, total):
            if total == 0:
                logging.info(f"Mailbox {settings.mailbox!r} is empty")
                return []

            bounds = window.resolve(total)
            if bounds is None:
                return []
            start, end = bounds
            logging.info(f"Fetching messages {start}:{end} of {total} from {settings.mailbox!r}")

            try:
                fetched = store.fetch_range(start, end)
            except StoreError as e:
                raise FetchError(str(e)) from e

        records = []
        for item in fetched:
            record = MessageRecord.from_fetched(item)
            if record is None:
                logging.debug(f"Dropping fetched entry without usable envelope (uid={item.uid})")
                continue
            records.append(record)

        # Sequence order is not guaranteed to be chronological
        records.sort(key=lambda record: record.received_at, reverse=True)

        if not window.is_entire and len(records) > window.count:
            records = records[: window.count]

        logging.info(f"Returning {len(records)} messages")
        return records

    def search(self, query: str, limit: int, settings: ImapSettings) -> List[MessageRecord]:
        """Scan the whole mailbox for records containing every query term.

        Args:
            query: Free text; whitespace separated terms, case-insensitive
            limit: Maximum number of matches; zero or negative means unbounded
            settings: Resolved store settings for this call

        Raises:
            ValidationError: If the query is empty or only whitespace
        """
        if not query or not query.strip():
            raise ValidationError("query is required")

        search_filter = SearchFilter.from_query(query)
        records = self.list_messages(QueryWindow.entire(), settings)
        matches = [record for record in records if search_filter.matches(record)]

        if limit > 0 and len(matches) > limit:
            matches = matches[:limit]

        logging.info(f"Search matched {len(matches)} of {len(records)} messages")
        return matches

    def move_to_mailbox(self, uids: Sequence[int], destination: str, settings: ImapSettings) -> int:
        """Move messages by UID into ``destination``, creating it if needed.

        The move is submitted as a single request; the store either accepts
        the whole batch or the call fails.

        Returns:
            Number of identifiers submitted to the store

        Raises:
            ValidationError: If destination is empty
            MoveError: If creating the destination or the move itself fails
        """
        if not uids:
            return 0
        if not destination:
            raise ValidationError("destination mailbox is required")

        valid_uids = [uid for uid in uids if uid > 0]
        if not valid_uids:
            return 0

        with self.open_session(settings, readonly=False) as (store, total):
            if total == 0:
                logging.info(f"Mailbox {settings.mailbox!r} is empty, nothing to move")
                return 0

            try:
                store.create_mailbox(destination)
            except MailboxExistsError:
                logging.debug(f"Mailbox {destination!r} already exists")
            except StoreError as e:
                raise MoveError(str(e)) from e

            logging.info(f"Moving {len(valid_uids)} messages from {settings.mailbox!r} to {destination!r}")
            try:
                store.move(valid_uids, destination)
            except StoreError as e:
                raise MoveError(str(e)) from e

        return len(valid_uids)
