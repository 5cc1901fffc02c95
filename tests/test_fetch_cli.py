"""Tests for the standalone fetch command."""

import json

import pytest

from ai_over_email import fetch_cli
from ai_over_email.errors import AuthError
from ai_over_email.mailbox import MailboxClient

from fakes import FakeMailServer, make_message


@pytest.fixture
def mail_server():
    return FakeMailServer(
        {
            "INBOX": [make_message(1, day=0, subject="Old"), make_message(2, day=1, subject="New")],
            "Archive": [make_message(9, day=0, subject="Archived")],
        }
    )


@pytest.fixture
def client(mail_server):
    return MailboxClient(store_factory=mail_server.factory)


def test_prints_recent_records_as_json(env_file, client, capsys):
    status = fetch_cli.run(["-n", "1", "--env", env_file], mailbox_client=client)

    assert status == 0
    records = json.loads(capsys.readouterr().out)
    assert [record["subject"] for record in records] == ["New"]
    assert set(records[0]) == {"uid", "internal_date", "from", "subject", "body"}


def test_reads_requested_mailbox(env_file, client, capsys):
    assert fetch_cli.run(["--env", env_file, "--mailbox", "Archive"], mailbox_client=client) == 0
    assert [record["uid"] for record in json.loads(capsys.readouterr().out)] == [9]


@pytest.mark.parametrize("count", ["0", "-2"])
def test_non_positive_count(env_file, client, mail_server, capsys, count):
    assert fetch_cli.run(["-n", count, "--env", env_file], mailbox_client=client) == 1

    captured = capsys.readouterr()
    assert "-n must be positive" in captured.err
    assert captured.out == ""
    assert mail_server.calls == []


def test_missing_credentials(tmp_path, client, capsys):
    status = fetch_cli.run(["--env", str(tmp_path / "absent.env")], mailbox_client=client)

    assert status == 1
    assert "SERVER, USERNAME, and PASSWORD must be set" in capsys.readouterr().err


def test_quiet_suppresses_error_output(env_file, client, mail_server, capsys):
    mail_server.failures["login"] = AuthError("login failed: invalid credentials")

    assert fetch_cli.run(["--env", env_file, "--quiet"], mailbox_client=client) == 1

    captured = capsys.readouterr()
    assert captured.err == ""
    assert captured.out == ""
