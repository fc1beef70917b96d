import os

import pytest

from contact_mailer.config_loader import MailerSettings, load_settings
from contact_mailer.transport import TransportTimeouts


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("MAILER_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_file_or_env():
    settings = load_settings()
    assert settings == MailerSettings()
    assert settings.port == 3005
    assert settings.auth_service_url is None
    assert settings.timeouts == TransportTimeouts()


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("MAILER_DB_PATH", "postgresql://u:p@db/mail")
    monkeypatch.setenv("MAILER_PORT", "8080")
    monkeypatch.setenv("MAILER_AUTH_SERVICE_URL", "http://auth:3001/")
    monkeypatch.setenv("MAILER_ALLOWED_ORIGINS", "https://a.test, https://b.test")
    monkeypatch.setenv("MAILER_RATE_LIMIT_MAX_REQUESTS", "5")
    monkeypatch.setenv("MAILER_TIMEOUT_SMTP_SEND", "2.5")
    monkeypatch.setenv("MAILER_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.db_path == "postgresql://u:p@db/mail"
    assert settings.port == 8080
    assert settings.auth_service_url == "http://auth:3001"
    assert settings.allowed_origins == ["https://a.test", "https://b.test"]
    assert settings.rate_limit_max_requests == 5
    assert settings.timeouts.smtp_send == 2.5
    assert settings.timeouts.smtp_connect == 15.0
    assert settings.log_level == "DEBUG"


def test_ini_file_wins_over_environment(monkeypatch, tmp_path):
    config = tmp_path / "mailer.ini"
    config.write_text(
        "[storage]\n"
        "db_path = /srv/mailer.db\n"
        "[server]\n"
        "port = 9000\n"
        "environment = production\n"
        "[provider]\n"
        "accounts_url = https://accounts.zoho.com\n"
        "[timeouts]\n"
        "oauth_token = 3\n"
    )
    monkeypatch.setenv("MAILER_CONFIG", str(config))
    monkeypatch.setenv("MAILER_PORT", "8080")
    monkeypatch.setenv("MAILER_SERVICE_NAME", "contact-api")

    settings = load_settings()

    assert settings.db_path == "/srv/mailer.db"
    assert settings.port == 9000
    assert settings.environment == "production"
    assert settings.service_name == "contact-api"
    assert settings.accounts_url == "https://accounts.zoho.com"
    assert settings.timeouts.oauth_token == 3.0


def test_explicit_path_argument(tmp_path):
    config = tmp_path / "other.ini"
    config.write_text("[rate_limit]\nwindow_seconds = 60\n")
    assert load_settings(config).rate_limit_window_seconds == 60


def test_invalid_number_raises(monkeypatch):
    monkeypatch.setenv("MAILER_PORT", "not-a-port")
    with pytest.raises(ValueError):
        load_settings()


def test_sqlite_busy_timeout(monkeypatch, tmp_path):
    assert load_settings().db_busy_timeout is None

    monkeypatch.setenv("MAILER_DB_BUSY_TIMEOUT", "45")
    assert load_settings().db_busy_timeout == 45.0

    config = tmp_path / "mailer.ini"
    config.write_text("[storage]\nbusy_timeout = 120\n")
    assert load_settings(config).db_busy_timeout == 120.0
