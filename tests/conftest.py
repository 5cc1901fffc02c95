"""Pytest configuration for the test suite."""

import sys
import os

import pytest

# Add the src directory to the Python path so tests can import from it
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src'))

from ai_over_email.config import ENV_KEYS  # noqa: E402


@pytest.fixture(autouse=True)
def clean_mail_environment(monkeypatch):
    """Keep real credentials in the developer's environment out of the tests."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def env_file(tmp_path):
    """Write a complete .env file and return its path."""
    path = tmp_path / ".env"
    path.write_text(
        "SERVER=imap.example.com\n"
        "USERNAME=agent@example.com\n"
        "PASSWORD=app-password\n"
        "SMTP_SERVER=smtp.example.com\n"
        "SMTP_PORT=587\n"
    )
    return str(path)
