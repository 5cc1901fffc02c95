"""Outbound relay capability and its SMTP implementation."""

import logging
import smtplib
import ssl
from typing import Optional, Protocol

from .errors import (
    AuthError,
    BodyWriteError,
    DialError,
    RecipientRejectedError,
    SecurityUpgradeError,
    SenderRejectedError,
)


class Relay(Protocol):
    """Steps of one outbound delivery session, in the order they are driven."""

    def dial(self, host: str, port: int) -> None: ...

    def offers_security(self) -> bool: ...

    def upgrade_security(self, server_name: str) -> None: ...

    def authenticate(self, username: str, password: str) -> None: ...

    def declare_sender(self, address: str) -> None: ...

    def declare_recipient(self, address: str) -> None: ...

    def write_body(self, document: str) -> None: ...

    def quit(self) -> None: ...

    def close(self) -> None: ...


class SmtpRelay:
    """Relay backed by smtplib.SMTP with explicit STARTTLS."""

    def __init__(self) -> None:
        self._smtp: Optional[smtplib.SMTP] = None

    def _require_connection(self) -> smtplib.SMTP:
        if self._smtp is None:
            raise DialError("smtp session is not open")
        return self._smtp

    def dial(self, host: str, port: int) -> None:
        logging.debug(f"Connecting to {host}:{port}")
        smtp = smtplib.SMTP()
        try:
            smtp.connect(host, port)
            smtp.ehlo()
        except (OSError, smtplib.SMTPException) as e:
            smtp.close()
            raise DialError(f"smtp dial failed: {e!s}") from e
        self._smtp = smtp

    def offers_security(self) -> bool:
        return self._require_connection().has_extn("starttls")

    def upgrade_security(self, server_name: str) -> None:
        smtp = self._require_connection()
        try:
            logging.debug("Starting TLS")
            smtp.starttls(context=ssl.create_default_context())
            smtp.ehlo()
        except (OSError, smtplib.SMTPException) as e:
            raise SecurityUpgradeError(f"starttls failed: {e!s}") from e

    def authenticate(self, username: str, password: str) -> None:
        smtp = self._require_connection()
        try:
            logging.debug(f"Logging in as {username}")
            smtp.login(username, password)
        except (OSError, smtplib.SMTPException) as e:
            raise AuthError(f"smtp auth failed: {e!s}") from e

    def declare_sender(self, address: str) -> None:
        smtp = self._require_connection()
        try:
            code, response = smtp.mail(address)
        except (OSError, smtplib.SMTPException) as e:
            raise SenderRejectedError(f"mail from failed: {e!s}") from e
        if code != 250:
            raise SenderRejectedError(f"mail from failed: {code} {response!r}")

    def declare_recipient(self, address: str) -> None:
        smtp = self._require_connection()
        try:
            code, response = smtp.rcpt(address)
        except (OSError, smtplib.SMTPException) as e:
            raise RecipientRejectedError(f"rcpt to failed: {e!s}") from e
        if code not in (250, 251):
            raise RecipientRejectedError(f"rcpt to failed: {code} {response!r}")

    def write_body(self, document: str) -> None:
        smtp = self._require_connection()
        try:
            code, response = smtp.data(document.encode("utf-8"))
        except (OSError, smtplib.SMTPException) as e:
            raise BodyWriteError(f"write body failed: {e!s}") from e
        if code != 250:
            raise BodyWriteError(f"close body failed: {code} {response!r}")

    def quit(self) -> None:
        smtp = self._require_connection()
        try:
            smtp.quit()
        except (OSError, smtplib.SMTPException) as e:
            raise BodyWriteError(f"quit failed: {e!s}") from e

    def close(self) -> None:
        if self._smtp is not None:
            self._smtp.close()
            self._smtp = None
