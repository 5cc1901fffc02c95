"""Email MCP server exposing list, search, send and soft delete tools."""

import argparse
import asyncio
from typing import Any, Dict, List, Optional

from mcp_framework import BaseMCPServer, ToolError, mcp_tool

from . import __version__
from .config import DEFAULT_MAILBOX, ImapSettings, SmtpSettings, load_config
from .mailbox import DELETED_MAILBOX, MailboxClient
from .models import QueryWindow
from .sender import OutboundSender


class EmailMCPServer(BaseMCPServer):
    """Email tools over a line-oriented JSON-RPC stream.

    Configuration is loaded from ``env_path`` and the environment on every
    tool call; each call opens and closes its own mail session.
    """

    def __init__(
        self,
        env_path: str = ".env",
        mailbox_client: Optional[MailboxClient] = None,
        outbound: Optional[OutboundSender] = None,
    ):
        """Initialize the email MCP server.

        Args:
            env_path: Path of the env file holding server and credentials
            mailbox_client: Engine for list/search/move, defaults to IMAP
            outbound: Engine for sending, defaults to SMTP
        """
        super().__init__("ai-over-email", __version__)
        self.env_path = env_path
        self.mailbox_client = mailbox_client or MailboxClient()
        self.outbound = outbound or OutboundSender()

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Add email-specific command line arguments."""
        parser.add_argument(
            "--env",
            default=".env",
            help="Path to the env file with SERVER, USERNAME, PASSWORD and SMTP settings (default: .env)",
        )

    def _imap_settings(self, mailbox: str) -> ImapSettings:
        return ImapSettings.from_config(load_config(self.env_path), mailbox or DEFAULT_MAILBOX)

    @mcp_tool(name="list_emails", description="List emails from a mailbox (recent by default or all).")
    async def list_emails(self, n: int = 10, all: bool = False, mailbox: str = DEFAULT_MAILBOX) -> List[Dict[str, Any]]:
        """List emails, most recent first.

        Args:
            n: Number of most recent emails to return.
            all: Return all emails in the mailbox.
            mailbox: Mailbox name (default INBOX).
        """
        settings = self._imap_settings(mailbox)
        window = QueryWindow.entire() if all else QueryWindow.recent(n)

        loop = asyncio.get_event_loop()
        records = await loop.run_in_executor(
            None, lambda: self.mailbox_client.list_messages(window, settings)
        )
        return [record.to_dict() for record in records]

    @mcp_tool(name="search_emails", description="Search emails by a rough query over from/subject/body.")
    async def search_emails(self, query: str, limit: int = 50, mailbox: str = DEFAULT_MAILBOX) -> List[Dict[str, Any]]:
        """Search the whole mailbox.

        Args:
            query: Search query text.
            limit: Max number of results to return (default 50).
            mailbox: Mailbox name (default INBOX).
        """
        if not query.strip():
            raise ToolError("query is required")
        settings = self._imap_settings(mailbox)

        loop = asyncio.get_event_loop()
        records = await loop.run_in_executor(
            None, lambda: self.mailbox_client.search(query, limit, settings)
        )
        return [record.to_dict() for record in records]

    @mcp_tool(name="send_email", description="Send an email.")
    async def send_email(self, to: str, subject: str, body: str) -> str:
        """Send a plain-text email.

        Args:
            to: Recipient email address.
            subject: Email subject.
            body: Email body contents.
        """
        if not (to and subject and body):
            raise ToolError("to, subject, and body are required")
        settings = SmtpSettings.from_config(load_config(self.env_path))

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, lambda: self.outbound.send(to, subject, body, settings))
        return "sent"

    @mcp_tool(name="delete_emails", description=f"Move emails to {DELETED_MAILBOX} (does not permanently delete).")
    async def delete_emails(self, uids: List[int], mailbox: str = DEFAULT_MAILBOX) -> Dict[str, int]:
        """Soft delete emails by UID.

        Args:
            uids: List of email UIDs to move.
            mailbox: Mailbox name (default INBOX).
        """
        if not uids:
            raise ToolError("uids is required")

        valid_uids = []
        for raw in uids:
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                continue
            if raw > 0 and float(raw).is_integer():
                valid_uids.append(int(raw))
        if not valid_uids:
            raise ToolError("no valid uids provided")

        settings = self._imap_settings(mailbox)

        loop = asyncio.get_event_loop()
        moved = await loop.run_in_executor(
            None, lambda: self.mailbox_client.move_to_mailbox(valid_uids, DELETED_MAILBOX, settings)
        )
        return {"moved": moved}


def main() -> None:
    """Main entry point for the email MCP server."""
    # Create server instance to parse args
    temp_server = EmailMCPServer()
    parsed_args = temp_server.parse_args()

    if parsed_args.describe:
        temp_server.describe_tools()
        return

    # Create actual server with parsed arguments
    server = EmailMCPServer(env_path=parsed_args.env)
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
