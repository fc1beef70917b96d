# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

This module provides a pre-configured FastAPI application built from
:func:`load_settings` and a :class:`MailerCore` that opens its database on
startup and releases its cached transport on shutdown.

Usage:
    uvicorn contact_mailer.server:app --host 0.0.0.0 --port 3005

Environment variables:
    MAILER_CONFIG: Path to the INI file (default: config.ini)
    MAILER_DB_PATH: Database connection string (default: /data/contact_mailer.db)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import create_app
from .config_loader import MailerSettings, load_settings
from .core import MailerCore
from .logger import configure_logging


def build_core(settings: MailerSettings) -> MailerCore:
    return MailerCore(
        db_path=settings.db_path,
        timeouts=settings.timeouts,
        db_busy_timeout=settings.db_busy_timeout,
        accounts_url=settings.accounts_url,
        mail_url=settings.mail_url,
    )


def build_app(settings: MailerSettings) -> FastAPI:
    """Create the application with a lifespan bound to a fresh core."""
    core = build_core(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler - opens and closes the core service."""
        await core.init()
        yield
        await core.close()

    return create_app(core, settings, lifespan=lifespan)


_settings = load_settings()
configure_logging(_settings.log_level)

app = build_app(_settings)
