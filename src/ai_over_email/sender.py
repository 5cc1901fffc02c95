"""Outbound send engine.

Drives one relay session through dial, STARTTLS, authentication, envelope and
body, then quits. Credentials are never sent over an unencrypted link to a
remote relay.
"""

import logging
from typing import Callable

from .config import SmtpSettings
from .errors import AuthError, MailError, ValidationError
from .relay import Relay, SmtpRelay

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")


def _single_line(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ")


def compose_message(sender: str, to: str, subject: str, body: str) -> str:
    """Build a plain-text message document.

    CR and LF in the subject are replaced with spaces so untrusted input
    cannot inject headers or end the header block early.

    Returns:
        Header lines, a blank line and the body, joined with CRLF
    """
    normalized_body = body.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")
    lines = [
        "From: " + _single_line(sender),
        "To: " + _single_line(to),
        "Subject: " + _single_line(subject),
        "MIME-Version: 1.0",
        "Content-Type: text/plain; charset=UTF-8",
        "Content-Transfer-Encoding: 8bit",
        "",
        normalized_body,
        "",
    ]
    return "\r\n".join(lines)


class OutboundSender:
    """Deliver single messages through an outbound relay.

    Attributes:
        relay_factory: Callable returning a fresh, undialled Relay per send
    """

    def __init__(self, relay_factory: Callable[[], Relay] = SmtpRelay) -> None:
        self.relay_factory = relay_factory

    def send(self, to: str, subject: str, body: str, settings: SmtpSettings) -> None:
        """Send one message to one recipient.

        Raises:
            ConfigError: If relay server, username or password is empty
            ValidationError: If the recipient contains line breaks
            DialError: If the relay cannot be reached
            SecurityUpgradeError: If STARTTLS is offered but fails
            AuthError: If authentication fails or no secure channel is available
            SenderRejectedError: If MAIL FROM is refused
            RecipientRejectedError: If RCPT TO is refused
            BodyWriteError: If streaming the document fails
        """
        settings.validate()
        if "\r" in to or "\n" in to:
            raise ValidationError("recipient address must not contain line breaks")

        port = settings.port_number
        relay = self.relay_factory()
        relay.dial(settings.server, port)
        try:
            if relay.offers_security():
                relay.upgrade_security(settings.server)
            elif settings.server not in LOOPBACK_HOSTS:
                raise AuthError("smtp auth failed: refusing to authenticate over an unencrypted connection")

            relay.authenticate(settings.username, settings.password)

            sender = settings.sender
            relay.declare_sender(sender)
            relay.declare_recipient(to)
            relay.write_body(compose_message(sender, to, subject, body))
            logging.info("Email sent successfully")

            try:
                relay.quit()
            except MailError as e:
                logging.warning(f"SMTP QUIT failed after the message was accepted: {e!s}")
        finally:
            relay.close()
