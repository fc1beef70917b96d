# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the contact mailer service.

Settings come from an INI file (default ``config.ini``, override with
``MAILER_CONFIG``) with ``MAILER_*`` environment variables as fallbacks.
INI values win over environment variables.

Example:
    Configuration file format (config.ini)::

        [storage]
        db_path = /data/contact_mailer.db
        busy_timeout = 100

        [server]
        host = 0.0.0.0
        port = 3005
        service_name = contact-service
        environment = production
        allowed_origins = https://app.example.com, https://admin.example.com

        [auth]
        service_url = http://auth-service:3001
        target_service = contact-service

        [rate_limit]
        window_seconds = 900
        max_requests = 100

        [provider]
        accounts_url = https://accounts.zoho.eu
        mail_url = https://mail.zoho.eu

        [timeouts]
        smtp_connect = 15
        smtp_send = 30
        oauth_token = 15
        account_lookup = 15
        attachment_upload = 30
        provider_send = 30

        [logging]
        level = INFO

    Loading::

        settings = load_settings()
        core = MailerCore(db_path=settings.db_path, timeouts=settings.timeouts)
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path

from .transport import TransportTimeouts
from .transport.provider import DEFAULT_ACCOUNTS_URL, DEFAULT_MAIL_URL

ENV_PREFIX = "MAILER_"


@dataclass
class MailerSettings:
    """Runtime settings for the mailer service.

    Attributes:
        db_path: Database connection string (SQLite path or postgresql:// DSN).
        db_busy_timeout: SQLite lock wait in seconds. None sizes it from
            ``timeouts`` so concurrent sends queue instead of failing.
        host: HTTP bind address.
        port: HTTP port.
        service_name: Name reported by /health.
        environment: Deployment environment reported by /health.
        auth_service_url: Base URL of the service-to-service auth authority.
            None disables service authentication.
        target_service: Value sent as ``X-Target-Service`` to the authority.
        allowed_origins: CORS origins.
        rate_limit_window_seconds: Fixed window length.
        rate_limit_max_requests: Requests allowed per client per window.
        accounts_url: Provider OAuth base URL.
        mail_url: Provider mail API base URL.
        timeouts: Network step timeouts.
        log_level: Root logging level.
    """

    db_path: str = "/data/contact_mailer.db"
    db_busy_timeout: float | None = None
    host: str = "0.0.0.0"
    port: int = 3005
    service_name: str = "contact-service"
    environment: str = "development"
    auth_service_url: str | None = None
    target_service: str = "contact-service"
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    rate_limit_window_seconds: int = 900
    rate_limit_max_requests: int = 100
    accounts_url: str = DEFAULT_ACCOUNTS_URL
    mail_url: str = DEFAULT_MAIL_URL
    timeouts: TransportTimeouts = field(default_factory=TransportTimeouts)
    log_level: str = "INFO"


def load_settings(config_path: str | os.PathLike | None = None) -> MailerSettings:
    """Load settings from an INI file with environment variables as fallbacks.

    Environment variables (all prefixed with MAILER_):
      MAILER_CONFIG - Path to config.ini file (default: config.ini)
      MAILER_DB_PATH - Database connection string
      MAILER_DB_BUSY_TIMEOUT - SQLite lock wait in seconds
      MAILER_HOST, MAILER_PORT - HTTP bind address and port
      MAILER_SERVICE_NAME, MAILER_ENVIRONMENT - Reported by /health
      MAILER_AUTH_SERVICE_URL - Auth authority base URL
      MAILER_TARGET_SERVICE - Target service name sent to the authority
      MAILER_ALLOWED_ORIGINS - Comma separated CORS origins
      MAILER_RATE_LIMIT_WINDOW_SECONDS, MAILER_RATE_LIMIT_MAX_REQUESTS
      MAILER_PROVIDER_ACCOUNTS_URL, MAILER_PROVIDER_MAIL_URL
      MAILER_TIMEOUT_<STEP> - One per TransportTimeouts field
      MAILER_LOG_LEVEL - Logging level (default: INFO)

    Raises:
        ValueError: A numeric setting cannot be parsed.
    """
    path = Path(config_path or os.getenv(f"{ENV_PREFIX}CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, env: str, default: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return os.getenv(f"{ENV_PREFIX}{env}", default)

    def get_int(section: str, option: str, env: str, default: int) -> int:
        value = get(section, option, env)
        return default if value in (None, "") else int(value)

    def get_float(section: str, option: str, env: str, default: float) -> float:
        value = get(section, option, env)
        return default if value in (None, "") else float(value)

    defaults = MailerSettings()
    default_timeouts = TransportTimeouts()
    timeouts = TransportTimeouts(
        **{
            name: get_float("timeouts", name, f"TIMEOUT_{name.upper()}", getattr(default_timeouts, name))
            for name in TransportTimeouts.__dataclass_fields__
        }
    )

    origins_raw = get("server", "allowed_origins", "ALLOWED_ORIGINS")
    origins = (
        [o.strip() for o in origins_raw.split(",") if o.strip()]
        if origins_raw
        else defaults.allowed_origins
    )

    busy_raw = get("storage", "busy_timeout", "DB_BUSY_TIMEOUT")
    db_busy_timeout = float(busy_raw) if busy_raw else None

    auth_url = (get("auth", "service_url", "AUTH_SERVICE_URL") or "").strip() or None

    return MailerSettings(
        db_path=os.path.expanduser(get("storage", "db_path", "DB_PATH", defaults.db_path)),
        db_busy_timeout=db_busy_timeout,
        host=get("server", "host", "HOST", defaults.host),
        port=get_int("server", "port", "PORT", defaults.port),
        service_name=get("server", "service_name", "SERVICE_NAME", defaults.service_name),
        environment=get("server", "environment", "ENVIRONMENT", defaults.environment),
        auth_service_url=auth_url.rstrip("/") if auth_url else None,
        target_service=get("auth", "target_service", "TARGET_SERVICE", defaults.target_service),
        allowed_origins=origins,
        rate_limit_window_seconds=get_int(
            "rate_limit", "window_seconds", "RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds
        ),
        rate_limit_max_requests=get_int(
            "rate_limit", "max_requests", "RATE_LIMIT_MAX_REQUESTS", defaults.rate_limit_max_requests
        ),
        accounts_url=get("provider", "accounts_url", "PROVIDER_ACCOUNTS_URL", defaults.accounts_url),
        mail_url=get("provider", "mail_url", "PROVIDER_MAIL_URL", defaults.mail_url),
        timeouts=timeouts,
        log_level=(get("logging", "level", "LOG_LEVEL", defaults.log_level) or "INFO").upper(),
    )
