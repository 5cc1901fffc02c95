"""Mail store capability and its IMAP implementation.

The mailbox engine only talks to the MailStore protocol below. ImapMailStore
adapts imaplib to that surface: it maps transport failures onto the error
taxonomy and parses FETCH responses into FetchedMessage objects. Tests use an
in-memory store with the same methods.
"""

import imaplib
import logging
import re
import ssl
from datetime import datetime
from email import policy
from email.errors import MessageError
from email.parser import BytesParser
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from .config import DEFAULT_IMAP_PORT, split_host_port
from .errors import (
    AuthError,
    ConnectError,
    MailboxExistsError,
    SelectError,
    StoreError,
)
from .models import Address, Envelope, FetchedMessage

# Header-only and text-only sections keep the fetch small; PEEK leaves \Seen alone
FETCH_ITEMS = "(UID INTERNALDATE BODY.PEEK[HEADER.FIELDS (FROM SUBJECT)] BODY.PEEK[TEXT])"

_MESSAGE_START = re.compile(rb"^\s*\d+ \(")
_UID = re.compile(rb"\bUID (\d+)")
_INTERNALDATE = re.compile(rb'INTERNALDATE "([^"]+)"')
_SECTION = re.compile(rb"BODY\[([^\]]*)\](?:<\d+>)? \{\d+\}\s*$")
_EXISTS = re.compile(rb"^\s*(\d+)")


class MailStore(Protocol):
    """Operations the mailbox engine needs from a remote mail store."""

    def connect(self, address: str, server_name: str) -> None:
        """Open the connection. Raises ConnectError."""
        ...

    def login(self, username: str, password: str) -> None:
        """Authenticate. Raises AuthError."""
        ...

    def select(self, mailbox: str, readonly: bool = True) -> int:
        """Select a mailbox and return its message count. Raises SelectError."""
        ...

    def fetch_range(self, start: int, end: int) -> List[FetchedMessage]:
        """Fetch sequence numbers start..end inclusive. Raises StoreError."""
        ...

    def create_mailbox(self, name: str) -> None:
        """Create a mailbox. Raises MailboxExistsError or StoreError."""
        ...

    def move(self, uids: Sequence[int], destination: str) -> None:
        """Move messages addressed by UID in one request. Raises StoreError."""
        ...

    def logout(self) -> None:
        """Release the session. Must not raise."""
        ...


def quote_mailbox(name: str) -> str:
    """Quote a mailbox name for use as an IMAP astring."""
    if name.startswith('"') and name.endswith('"') and len(name) >= 2:
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_internaldate(raw: bytes) -> Optional[datetime]:
    """Parse an INTERNALDATE value such as ``17-Jul-1996 02:44:25 -0700``."""
    try:
        return datetime.strptime(raw.decode("ascii").strip(), "%d-%b-%Y %H:%M:%S %z")
    except (UnicodeDecodeError, ValueError):
        return None


def parse_envelope(header_bytes: bytes) -> Optional[Envelope]:
    """Build an Envelope from a raw From/Subject header block.

    Headers are parsed with the modern email policy, which decodes RFC 2047
    encoded words and unfolds continuation lines. Display names are decoded
    the same way.
    """
    try:
        message = BytesParser(policy=policy.default).parsebytes(header_bytes, headersonly=True)
        subject_header = message.get("Subject")
        from_header = message.get("From")

        addresses: Tuple[Address, ...] = ()
        if from_header is not None:
            addresses = tuple(
                Address(
                    personal_name=address.display_name or "",
                    mailbox=address.username or "",
                    host=address.domain or "",
                )
                for address in from_header.addresses
            )
    except (MessageError, ValueError, TypeError, IndexError, AttributeError) as e:
        logging.debug(f"Unparsable envelope headers: {e!s}")
        return None

    return Envelope(
        subject=str(subject_header) if subject_header is not None else "",
        sender=addresses,
    )


class _PartialMessage:
    """Accumulates the pieces of one FETCH response."""

    def __init__(self) -> None:
        self.uid: Optional[int] = None
        self.internal_date: Optional[datetime] = None
        self.header: Optional[bytes] = None
        self.text: Optional[bytes] = None

    def build(self) -> FetchedMessage:
        envelope = parse_envelope(self.header) if self.header is not None else None
        return FetchedMessage(
            uid=self.uid,
            internal_date=self.internal_date,
            envelope=envelope,
            text=self.text,
        )


def parse_fetch_response(data: Iterable[Any]) -> List[FetchedMessage]:
    """Group imaplib FETCH output into one FetchedMessage per message.

    imaplib returns a flat list mixing ``(meta, literal)`` tuples and bare
    bytes. A meta chunk starting with a sequence number opens a new message;
    every following chunk belongs to it until the next one.
    """
    partials: List[_PartialMessage] = []
    current: Optional[_PartialMessage] = None

    for item in data:
        if item is None:
            continue
        if isinstance(item, tuple):
            meta, payload = item[0], item[1] if len(item) > 1 else None
        else:
            meta, payload = item, None
        if not isinstance(meta, bytes):
            continue

        if _MESSAGE_START.match(meta):
            current = _PartialMessage()
            partials.append(current)
        if current is None:
            continue

        uid_match = _UID.search(meta)
        if uid_match:
            current.uid = int(uid_match.group(1))

        date_match = _INTERNALDATE.search(meta)
        if date_match:
            current.internal_date = parse_internaldate(date_match.group(1))

        if isinstance(payload, bytes):
            section_match = _SECTION.search(meta)
            if section_match:
                section = section_match.group(1).upper()
                if section.startswith(b"HEADER"):
                    current.header = payload
                elif section == b"TEXT":
                    current.text = payload

    return [partial.build() for partial in partials]


def _is_already_exists(data: Any) -> bool:
    text = b" ".join(part for part in (data or []) if isinstance(part, bytes)).upper()
    return b"[ALREADYEXISTS]" in text or b"ALREADY EXISTS" in text


class ImapMailStore:
    """MailStore backed by an imaplib IMAP4_SSL connection."""

    def __init__(self) -> None:
        self._mail: Optional[imaplib.IMAP4_SSL] = None

    def _require_connection(self) -> imaplib.IMAP4_SSL:
        if self._mail is None:
            raise ConnectError("not connected to mail server")
        return self._mail

    def connect(self, address: str, server_name: str) -> None:
        host, port = split_host_port(address, DEFAULT_IMAP_PORT)
        try:
            logging.info(f"Connecting to IMAP server: {server_name}")
            context = ssl.create_default_context()
            self._mail = imaplib.IMAP4_SSL(host, int(port), ssl_context=context)
            logging.info("IMAP SSL connection established")
        except (OSError, ValueError, imaplib.IMAP4.error) as e:
            logging.error(f"IMAP connection failed: {e!s}")
            raise ConnectError(f"failed to connect: {e!s}") from e

    def login(self, username: str, password: str) -> None:
        mail = self._require_connection()
        try:
            mail.login(username, password)
            logging.info("IMAP login successful")
        except (imaplib.IMAP4.error, OSError) as e:
            logging.error(f"IMAP login failed: {e!s}")
            raise AuthError(f"login failed: {e!s}") from e
        self._refresh_capabilities(mail)

    def _refresh_capabilities(self, mail: imaplib.IMAP4_SSL) -> None:
        """Re-read CAPABILITY after login.

        imaplib only records the greeting capabilities, and servers such as
        Gmail advertise MOVE and UIDPLUS to authenticated sessions only. On
        failure the greeting set is kept.
        """
        try:
            typ, data = mail.capability()
        except (imaplib.IMAP4.error, OSError) as e:
            logging.warning(f"CAPABILITY after login failed: {e!s}")
            return
        if typ != "OK" or not data or not isinstance(data[-1], bytes):
            logging.warning(f"CAPABILITY after login failed: {data}")
            return
        mail.capabilities = tuple(data[-1].decode("ascii", "replace").upper().split())
        logging.debug(f"IMAP capabilities: {' '.join(mail.capabilities)}")

    def select(self, mailbox: str, readonly: bool = True) -> int:
        mail = self._require_connection()
        quoted = quote_mailbox(mailbox)
        try:
            typ, data = mail.select(quoted, readonly=readonly)
        except (imaplib.IMAP4.error, OSError) as e:
            raise SelectError(f"select mailbox failed: {e!s}") from e
        if typ != "OK":
            raise SelectError(f"select mailbox failed: {data}")

        count_match = _EXISTS.match(data[0] or b"0") if data else None
        count = int(count_match.group(1)) if count_match else 0
        logging.info(f"Selected {quoted} (readonly={readonly}), {count} messages")
        return count

    def fetch_range(self, start: int, end: int) -> List[FetchedMessage]:
        mail = self._require_connection()
        message_set = f"{start}:{end}"
        logging.debug(f"Fetching sequence range {message_set}")
        try:
            typ, data = mail.fetch(message_set, FETCH_ITEMS)
        except (imaplib.IMAP4.error, OSError) as e:
            raise StoreError(f"fetch failed: {e!s}") from e
        if typ != "OK":
            raise StoreError(f"fetch failed: {data}")
        return parse_fetch_response(data or [])

    def create_mailbox(self, name: str) -> None:
        mail = self._require_connection()
        try:
            typ, data = mail.create(quote_mailbox(name))
        except (imaplib.IMAP4.error, OSError) as e:
            raise StoreError(f"create mailbox failed: {e!s}") from e
        if typ == "OK":
            logging.info(f"Created mailbox {name!r}")
            return
        if _is_already_exists(data):
            raise MailboxExistsError(f"mailbox {name!r} already exists")
        raise StoreError(f"create mailbox failed: {data}")

    def _has_capability(self, mail: imaplib.IMAP4_SSL, name: str) -> bool:
        return name in getattr(mail, "capabilities", ())

    def move(self, uids: Sequence[int], destination: str) -> None:
        mail = self._require_connection()
        uid_set = ",".join(str(uid) for uid in uids)
        quoted_dest = quote_mailbox(destination)

        try:
            if self._has_capability(mail, "MOVE"):
                typ, data = mail.uid("MOVE", uid_set, quoted_dest)
                if typ != "OK":
                    raise StoreError(f"UID MOVE failed: {data}")
                return

            logging.debug("Server lacks MOVE, using COPY + STORE + UID EXPUNGE")
            typ, data = mail.uid("COPY", uid_set, quoted_dest)
            if typ != "OK":
                raise StoreError(f"UID COPY failed: {data}")
            typ, data = mail.uid("STORE", uid_set, "+FLAGS.SILENT", r"(\Deleted)")
            if typ != "OK":
                raise StoreError(f"UID STORE failed: {data}")
            if not self._has_capability(mail, "UIDPLUS"):
                # A plain EXPUNGE would also remove unrelated \Deleted messages
                logging.warning(f"Server lacks UIDPLUS, UIDs {uid_set} left flagged \\Deleted in place")
                return
            typ, data = mail.uid("EXPUNGE", uid_set)
            if typ != "OK":
                raise StoreError(f"UID EXPUNGE failed: {data}")
        except (imaplib.IMAP4.error, OSError) as e:
            raise StoreError(f"move failed: {e!s}") from e

    def logout(self) -> None:
        """Safely close the IMAP connection."""
        if self._mail is None:
            return
        try:
            if self._mail.state == "SELECTED":
                self._mail.close()
            self._mail.logout()
            logging.info("IMAP connection closed")
        except (imaplib.IMAP4.error, OSError) as e:
            logging.warning(f"Error closing IMAP connection: {e!s}")
        finally:
            self._mail = None
