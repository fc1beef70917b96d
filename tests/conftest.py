"""Shared fixtures: a file-backed SQLite database and a capturing SMTP server."""

from __future__ import annotations

import asyncio
import base64
import socket
from typing import Any

import pytest
import pytest_asyncio
from aiosmtpd.controller import Controller

from contact_mailer.errors import AttachmentUploadFailed, DispatchFailed
from contact_mailer.mailer_db import MailerDb
from contact_mailer.transport import StagedAttachment, Transport

CREDENTIAL_KEY = "acme-credential-key"


def get_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


class CapturingHandler:
    """SMTP handler that captures received messages."""

    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.reject_next = False
        self.reject_code = 550
        self.reject_message = "Mailbox not found"
        self.delay_seconds = 0

    async def handle_RCPT(self, server, session, envelope, address, rcpt_options):
        envelope.rcpt_tos.append(address)
        return "250 OK"

    async def handle_DATA(self, server, session, envelope):
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if self.reject_next:
            self.reject_next = False
            return f"{self.reject_code} {self.reject_message}"

        self.messages.append({
            "from": envelope.mail_from,
            "to": list(envelope.rcpt_tos),
            "data": envelope.content.decode("utf-8", errors="replace"),
        })
        return "250 Message accepted for delivery"


@pytest.fixture
def smtp_handler():
    return CapturingHandler()


@pytest.fixture
def smtp_server(smtp_handler):
    """Start a fake SMTP server on a free port."""
    port = get_free_port()
    controller = Controller(smtp_handler, hostname="127.0.0.1", port=port)
    controller.start()
    yield controller, port
    controller.stop()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "contact_mailer.db")


@pytest_asyncio.fixture
async def db(db_path):
    mailer_db = MailerDb(db_path)
    await mailer_db.init_db()
    yield mailer_db
    await mailer_db.close()


def smtp_credential_row(port: int, **overrides: Any) -> dict[str, Any]:
    row = {
        "id": "acme",
        "name": "noreply@acme.test",
        "type": "email",
        "provider": "smtp",
        "host": "127.0.0.1",
        "port": port,
        "secure": False,
        "username": None,
        "password": None,
        "api_key": CREDENTIAL_KEY,
    }
    row.update(overrides)
    return row


class FakeTransport(Transport):
    """Transport double recording sends; ``fail`` makes every dispatch fail."""

    def __init__(self, credential, timeouts=None, *, fail: str | None = None, delay: float = 0.0):
        self.credential = credential
        self.fail = fail
        self.delay = delay
        self.sent: list[tuple[Any, Any]] = []
        self.closed = False

    @property
    def identity(self):
        return self.credential.identity

    async def send(self, message, staged=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise DispatchFailed(self.fail)
        self.sent.append((message, staged))

    async def verify(self):
        if self.fail:
            raise DispatchFailed(self.fail)

    async def close(self):
        self.closed = True


class FakeProviderTransport(FakeTransport):
    stages_attachments = True

    def __init__(self, credential, *, fail: str | None = None, broken_upload: str | None = None):
        super().__init__(credential, fail=fail)
        self.broken_upload = broken_upload
        self.uploads: list[str] = []

    async def upload_attachment(self, filename, data):
        self.uploads.append(filename)
        if filename == self.broken_upload:
            raise AttachmentUploadFailed(filename, "HTTP 500")
        return StagedAttachment("store-1", f"/tmp/{filename}", filename)


class TransportFactories:
    """Factories injected into the resolver; every built transport is kept."""

    def __init__(self):
        self.smtp_built: list[FakeTransport] = []
        self.provider_built: list[FakeProviderTransport] = []
        self.smtp_fail: str | None = None
        self.smtp_delay = 0.0
        self.provider_fail: str | None = None
        self.broken_upload: str | None = None
        self.construction_error: Exception | None = None

    def smtp(self, credential, timeouts):
        transport = FakeTransport(credential, timeouts, fail=self.smtp_fail, delay=self.smtp_delay)
        self.smtp_built.append(transport)
        return transport

    async def provider(self, credential, **kwargs):
        if self.construction_error is not None:
            raise self.construction_error
        transport = FakeProviderTransport(
            credential, fail=self.provider_fail, broken_upload=self.broken_upload
        )
        self.provider_built.append(transport)
        return transport


@pytest.fixture
def factories():
    return TransportFactories()
