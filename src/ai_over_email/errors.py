"""Exceptions raised by mailbox and outbound mail operations.

Every failure that can reach the tool dispatcher derives from MailError so the
dispatcher can turn it into a single application error carrying the message.
"""


class MailError(Exception):
    """Base class for all mail operation failures."""

    pass


class ConfigError(MailError):
    """Raised when a required server address or credential is missing.

    Also raised when the env file exists but cannot be read. Never retried.
    """

    pass


class ValidationError(MailError):
    """Raised when caller-supplied arguments are invalid.

    Always local and immediate; no network activity precedes it.
    """

    pass


class ConnectError(MailError):
    """Raised when the connection to the mail store cannot be established.

    This includes DNS failures, refused connections and TLS handshake errors.
    """

    pass


class DialError(ConnectError):
    """Raised when the outbound relay cannot be dialled."""

    pass


class AuthError(MailError):
    """Raised when the mail store or relay rejects the credentials."""

    pass


class SelectError(MailError):
    """Raised when the requested mailbox is missing or inaccessible."""

    pass


class FetchError(MailError):
    """Raised when a bulk fetch fails. No partial result is returned."""

    pass


class MoveError(MailError):
    """Raised when the destination mailbox cannot be created or the move is rejected."""

    pass


class SecurityUpgradeError(MailError):
    """Raised when the relay advertises STARTTLS but the upgrade fails."""

    pass


class SenderRejectedError(MailError):
    """Raised when the relay refuses the envelope sender (MAIL FROM)."""

    pass


class RecipientRejectedError(MailError):
    """Raised when the relay refuses the recipient (RCPT TO)."""

    pass


class BodyWriteError(MailError):
    """Raised when the message document cannot be streamed to the relay."""

    pass


class StoreError(MailError):
    """Raised by a mail store capability when a remote command fails.

    The engine translates this into the operation-specific error
    (FetchError or MoveError).
    """

    pass


class MailboxExistsError(StoreError):
    """Raised by create_mailbox when the mailbox already exists."""

    pass
