"""Standalone command printing the most recent emails of a mailbox as JSON."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_MAILBOX, ImapSettings, load_config
from .errors import MailError
from .mailbox import MailboxClient
from .models import QueryWindow


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-over-email-fetch",
        description="Print the most recent emails of a mailbox as JSON",
    )
    parser.add_argument("-n", type=int, default=10, help="number of most recent emails to return")
    parser.add_argument("--env", default=".env", help="path to env file")
    parser.add_argument("--mailbox", default=DEFAULT_MAILBOX, help="mailbox to read")
    parser.add_argument("--quiet", action="store_true", help="suppress non-JSON output")
    return parser


def _exit_error(message: str, quiet: bool) -> int:
    if not quiet:
        print(message, file=sys.stderr)
    return 1


def run(args: Optional[List[str]] = None, mailbox_client: Optional[MailboxClient] = None) -> int:
    """Run the command and return the process exit status."""
    parsed = build_parser().parse_args(args)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s - %(message)s")

    if parsed.n <= 0:
        return _exit_error("-n must be positive", parsed.quiet)

    client = mailbox_client or MailboxClient()
    try:
        settings = ImapSettings.from_config(load_config(parsed.env), parsed.mailbox)
        records = client.list_messages(QueryWindow.recent(parsed.n), settings)
    except MailError as e:
        return _exit_error(str(e), parsed.quiet)

    json.dump([record.to_dict() for record in records], sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
