"""Data classes shared by the mailbox engine, the mail store and the tool server."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import ValidationError

# Sort key for records whose store did not report an INTERNALDATE
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Address:
    """One address entry from a message envelope."""
    personal_name: str
    mailbox: str
    host: str

    def format(self) -> str:
        full = f"{self.mailbox}@{self.host}" if self.host else self.mailbox
        if self.personal_name:
            return f"{self.personal_name} <{full}>"
        return full


@dataclass(frozen=True)
class Envelope:
    """The envelope fields the engine needs from a fetched message."""
    subject: str
    sender: Tuple[Address, ...] = ()


@dataclass(frozen=True)
class FetchedMessage:
    """A raw message as returned by a mail store fetch, before normalization.

    Attributes:
        uid: Store-assigned identifier, None if the server omitted it
        internal_date: Delivery timestamp assigned by the store
        envelope: Parsed envelope, None if the header section was unusable
        text: Raw bytes of the plain-text body section
    """
    uid: Optional[int]
    internal_date: Optional[datetime] = None
    envelope: Optional[Envelope] = None
    text: Optional[bytes] = None


def format_address_list(addresses: Iterable[Optional[Address]]) -> str:
    """Render envelope addresses as a comma separated display string."""
    return ", ".join(address.format() for address in addresses if address is not None)


@dataclass(frozen=True)
class MessageRecord:
    """Normalized, read-only snapshot of one message.

    Attributes:
        uid: Store identifier used for move/delete targeting
        received_at: Store delivery timestamp, the only ordering key
        sender: Formatted From addresses
        subject: Envelope subject, decoded for display. RFC 2047 encoded
            words are decoded and folded header lines unfolded, so the text
            is not the raw header value
        body: Plain-text body, stripped of surrounding whitespace
    """
    uid: int
    received_at: datetime
    sender: str
    subject: str
    body: str = ""

    @classmethod
    def from_fetched(cls, fetched: FetchedMessage) -> Optional["MessageRecord"]:
        """Normalize a fetched message, or return None if it has to be dropped."""
        if fetched.envelope is None or fetched.uid is None:
            return None

        body = ""
        if fetched.text is not None:
            body = fetched.text.decode("utf-8", errors="replace").strip()

        return cls(
            uid=fetched.uid,
            received_at=fetched.internal_date or EPOCH,
            sender=format_address_list(fetched.envelope.sender),
            subject=fetched.envelope.subject,
            body=body,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation used in tool results and CLI output."""
        return {
            "uid": self.uid,
            "internal_date": self.received_at.isoformat(),
            "from": self.sender,
            "subject": self.subject,
            "body": self.body,
        }


@dataclass(frozen=True)
class QueryWindow:
    """Either the most recent ``count`` messages or, when count is None, all of them."""
    count: Optional[int] = None

    @classmethod
    def recent(cls, count: int) -> "QueryWindow":
        if count <= 0:
            raise ValidationError("n must be positive")
        return cls(count=count)

    @classmethod
    def entire(cls) -> "QueryWindow":
        return cls(count=None)

    @property
    def is_entire(self) -> bool:
        return self.count is None

    def resolve(self, total: int) -> Optional[Tuple[int, int]]:
        """Resolve against the mailbox message count.

        Returns:
            Inclusive 1-based (start, end) sequence range, or None when there
            is nothing to fetch
        """
        if total <= 0:
            return None

        if self.count is None:
            start = 1
        else:
            start = max(1, total - self.count + 1)
        end = total

        if start > end:
            return None
        return start, end


@dataclass(frozen=True)
class SearchFilter:
    """Case-insensitive all-terms substring match over sender, subject and body."""
    terms: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_query(cls, query: str) -> "SearchFilter":
        return cls(terms=tuple(query.lower().split()))

    def matches(self, record: MessageRecord) -> bool:
        # Terms never contain whitespace, so the newline keeps them from spanning fields
        haystack = "\n".join((record.sender, record.subject, record.body)).lower()
        return all(term in haystack for term in self.terms)
