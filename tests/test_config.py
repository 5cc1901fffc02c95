"""Tests for env file loading and settings resolution."""

import pytest

from ai_over_email.config import ImapSettings, SmtpSettings, config_value, load_config
from ai_over_email.errors import ConfigError


class TestLoadConfig:
    def test_reads_env_file(self, env_file):
        config = load_config(env_file)

        assert config["SERVER"] == "imap.example.com"
        assert config["USERNAME"] == "agent@example.com"
        assert config["PASSWORD"] == "app-password"
        assert config["SMTP_PORT"] == "587"

    def test_missing_file_is_not_an_error(self, tmp_path):
        assert load_config(str(tmp_path / "absent.env")) == {}

    def test_environment_overrides_file(self, env_file, monkeypatch):
        monkeypatch.setenv("PASSWORD", "from-environment")

        assert load_config(env_file)["PASSWORD"] == "from-environment"

    def test_empty_environment_value_does_not_override(self, env_file, monkeypatch):
        monkeypatch.setenv("SERVER", "")

        assert load_config(env_file)["SERVER"] == "imap.example.com"

    def test_environment_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SERVER", "imap.env.test")

        assert load_config(str(tmp_path / "absent.env")) == {"SERVER": "imap.env.test"}

    def test_quotes_and_trailing_commas_are_stripped(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("SERVER=imap.example.com,\nUSERNAME='me@example.com'\n")

        config = load_config(str(path))

        assert config["SERVER"] == "imap.example.com"
        assert config["USERNAME"] == "me@example.com"

    def test_relative_path_resolves_against_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "mail.env").write_text("SERVER=relative.example.com\n")
        monkeypatch.chdir(tmp_path)

        assert load_config("mail.env")["SERVER"] == "relative.example.com"

    def test_undecodable_file_raises_config_error(self, tmp_path):
        path = tmp_path / ".env"
        path.write_bytes(b"SERVER=\xff\xfe\n")

        with pytest.raises(ConfigError, match="failed to read env file"):
            load_config(str(path))


def test_config_value_fallback():
    assert config_value({"A": "set"}, "A", "fallback") == "set"
    assert config_value({"A": ""}, "A", "fallback") == "fallback"
    assert config_value({}, "A", "fallback") == "fallback"


class TestImapSettings:
    def test_defaults(self):
        settings = ImapSettings.from_config({"SERVER": "imap.example.com", "USERNAME": "u", "PASSWORD": "p"}, "")

        assert settings.mailbox == "INBOX"
        assert settings.address == "imap.example.com:993"
        assert settings.host == "imap.example.com"

    def test_explicit_port(self):
        settings = ImapSettings(server="imap.example.com:1993", username="u", password="p")

        assert settings.address == "imap.example.com:1993"
        assert settings.host == "imap.example.com"

    @pytest.mark.parametrize(
        "server,host,address",
        [
            ("[::1]:1993", "::1", "[::1]:1993"),
            ("[2001:db8::5]", "2001:db8::5", "[2001:db8::5]:993"),
            ("::1", "::1", "[::1]:993"),
            ("fe80::1:2", "fe80::1:2", "[fe80::1:2]:993"),
        ],
    )
    def test_ipv6_hosts(self, server, host, address):
        settings = ImapSettings(server=server, username="u", password="p")

        assert settings.host == host
        assert settings.address == address

    @pytest.mark.parametrize("missing", ["server", "username", "password"])
    def test_validate_requires_credentials(self, missing):
        values = {"server": "imap.example.com", "username": "u", "password": "p"}
        values[missing] = ""

        with pytest.raises(ConfigError, match="SERVER, USERNAME, and PASSWORD must be set"):
            ImapSettings(**values).validate()

    def test_repr_hides_password(self):
        settings = ImapSettings(server="imap.example.com", username="u", password="hunter2")
        assert "hunter2" not in repr(settings)


class TestSmtpSettings:
    def test_defaults(self):
        settings = SmtpSettings.from_config({"USERNAME": "me@example.com", "PASSWORD": "p"})

        assert settings.server == "smtp.gmail.com"
        assert settings.port_number == 587
        assert settings.sender == "me@example.com"

    def test_from_email_overrides_sender(self):
        settings = SmtpSettings.from_config(
            {"USERNAME": "login", "PASSWORD": "p", "FROM_EMAIL": "team@example.com"}
        )

        assert settings.sender == "team@example.com"

    def test_invalid_port(self):
        settings = SmtpSettings(server="smtp.example.com", username="u", password="p", port="smtp")

        with pytest.raises(ConfigError, match="invalid SMTP_PORT"):
            settings.port_number

    def test_validate_requires_credentials(self):
        with pytest.raises(ConfigError, match="SMTP_SERVER, USERNAME, and PASSWORD must be set"):
            SmtpSettings(server="smtp.example.com", username="u", password="").validate()

    def test_repr_hides_password(self):
        settings = SmtpSettings(server="smtp.example.com", username="u", password="hunter2")
        assert "hunter2" not in repr(settings)
