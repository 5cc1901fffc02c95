"""Configuration module for mailbox and outbound mail operations.

Values come from a .env file (parsed with python-dotenv) with process
environment variables taking precedence for the recognised keys. The mapping
is read fresh for every tool call and turned into frozen settings objects, so
a credential change on disk applies to the next call without a restart.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from dotenv import dotenv_values

from .errors import ConfigError

# Keys that the process environment may override
ENV_KEYS = (
    "SERVER",
    "USERNAME",
    "PASSWORD",
    "SSL",
    "SMTP_SERVER",
    "SMTP_PORT",
    "FROM_EMAIL",
)

DEFAULT_MAILBOX = "INBOX"
DEFAULT_IMAP_PORT = "993"
DEFAULT_SMTP_SERVER = "smtp.gmail.com"
DEFAULT_SMTP_PORT = "587"


def _clean_value(value: str) -> str:
    value = value.strip()
    if value.endswith(","):
        value = value[:-1].strip()
    return value.strip("\"'")


def load_config(env_path: Optional[str] = ".env") -> Dict[str, str]:
    """Load configuration from an env file and the process environment.

    Args:
        env_path: Path to the env file. Relative paths resolve against the
            current working directory. A missing file is not an error.

    Returns:
        Flat mapping of configuration keys to string values

    Raises:
        ConfigError: If the env file exists but cannot be read
    """
    config: Dict[str, str] = {}

    if env_path:
        path = env_path
        if not os.path.isabs(path):
            path = os.path.join(os.getcwd(), path)
        try:
            parsed = dotenv_values(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"failed to read env file: {e!s}") from e

        for key, value in parsed.items():
            if key and value is not None:
                config[key] = _clean_value(value)

    for key in ENV_KEYS:
        value = os.environ.get(key)
        if value:
            config[key] = value

    return config


def split_host_port(server: str, default_port: str) -> Tuple[str, str]:
    """Split ``host[:port]`` into host and port.

    IPv6 literals take a port only in the bracketed ``[addr]:port`` form. An
    unbracketed value with more than one colon is a bare IPv6 address.
    """
    if server.startswith("[") and "]" in server:
        host, _, rest = server[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
        return host, port or default_port
    if server.count(":") == 1:
        host, _, port = server.partition(":")
        return host, port or default_port
    return server, default_port


def config_value(config: Dict[str, str], key: str, fallback: str) -> str:
    """Return config[key], or fallback when it is missing or empty."""
    value = config.get(key)
    if value:
        return value
    return fallback


@dataclass(frozen=True)
class ImapSettings:
    """Resolved mail store settings for one call."""
    server: str
    username: str
    password: str
    mailbox: str = DEFAULT_MAILBOX

    @classmethod
    def from_config(cls, config: Dict[str, str], mailbox: str = DEFAULT_MAILBOX) -> "ImapSettings":
        return cls(
            server=config.get("SERVER", ""),
            username=config.get("USERNAME", ""),
            password=config.get("PASSWORD", ""),
            mailbox=mailbox or DEFAULT_MAILBOX,
        )

    def validate(self) -> None:
        if not (self.server and self.username and self.password):
            raise ConfigError("SERVER, USERNAME, and PASSWORD must be set")

    @property
    def host(self) -> str:
        """Host name used for TLS server name verification."""
        return split_host_port(self.server, DEFAULT_IMAP_PORT)[0]

    @property
    def address(self) -> str:
        """``host:port`` dial address, with IPv6 hosts in brackets."""
        host, port = split_host_port(self.server, DEFAULT_IMAP_PORT)
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    def __repr__(self) -> str:
        return (
            f"ImapSettings(server={self.server!r}, username={self.username!r}, "
            f"password='***', mailbox={self.mailbox!r})"
        )


@dataclass(frozen=True)
class SmtpSettings:
    """Resolved outbound relay settings for one call."""
    server: str
    username: str
    password: str
    port: str = DEFAULT_SMTP_PORT
    from_address: str = ""

    @classmethod
    def from_config(cls, config: Dict[str, str]) -> "SmtpSettings":
        return cls(
            server=config_value(config, "SMTP_SERVER", DEFAULT_SMTP_SERVER),
            port=config_value(config, "SMTP_PORT", DEFAULT_SMTP_PORT),
            username=config.get("USERNAME", ""),
            password=config.get("PASSWORD", ""),
            from_address=config_value(config, "FROM_EMAIL", ""),
        )

    def validate(self) -> None:
        if not (self.server and self.username and self.password):
            raise ConfigError("SMTP_SERVER, USERNAME, and PASSWORD must be set")

    @property
    def sender(self) -> str:
        """Envelope sender: the explicit from-address, else the login name."""
        return self.from_address or self.username

    @property
    def port_number(self) -> int:
        try:
            return int(self.port or DEFAULT_SMTP_PORT)
        except ValueError as e:
            raise ConfigError(f"invalid SMTP_PORT: {self.port!r}") from e

    def __repr__(self) -> str:
        return (
            f"SmtpSettings(server={self.server!r}, port={self.port!r}, "
            f"username={self.username!r}, password='***', from_address={self.from_address!r})"
        )
