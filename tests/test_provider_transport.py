"""Provider REST transport and attachment staging against a fake mail API."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from conftest import b64, get_free_port
from contact_mailer.entities.credential import ProviderApiCredential
from contact_mailer.entities.message import EmailMessagePayload
from contact_mailer.errors import (
    AttachmentUploadFailed,
    DispatchFailed,
    TransportConstructionFailed,
)
from contact_mailer.transport import AttachmentStager, ProviderTransport, StagedAttachment

CREDENTIAL = ProviderApiCredential(
    id="zoho-main",
    name="noreply@example.com",
    provider="zoho",
    client_id="client-id",
    client_secret="client-secret",
)


class FakeMailApi:
    """In-process stand-in for the provider's OAuth and mail endpoints."""

    def __init__(self):
        self.token_requests: list[dict[str, str]] = []
        self.uploads: list[str] = []
        self.sent: list[dict[str, Any]] = []
        self.accounts = [{"accountId": "123"}]
        self.url = ""

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/oauth/v2/token", self.token)
        app.router.add_get("/api/accounts", self.list_accounts)
        app.router.add_post("/api/accounts/{account}/messages/attachments", self.upload)
        app.router.add_post("/api/accounts/{account}/messages", self.send)
        return app

    async def token(self, request: web.Request) -> web.Response:
        self.token_requests.append(dict(request.query))
        if request.query.get("client_secret") != "client-secret":
            return web.json_response({"error": "invalid_client"}, status=401)
        return web.json_response({"access_token": f"tok-{len(self.token_requests)}"})

    async def list_accounts(self, request: web.Request) -> web.Response:
        if not request.headers.get("Authorization", "").startswith("Bearer tok-"):
            return web.json_response({"error": "unauthorized"}, status=401)
        return web.json_response({"data": self.accounts})

    async def upload(self, request: web.Request) -> web.Response:
        assert request.query.get("uploadType") == "multipart"
        form = await request.post()
        field = form["attach"]
        self.uploads.append(field.filename)
        if field.filename == "broken.txt":
            return web.json_response({"error": "storage full"}, status=500)
        if field.filename == "odd.txt":
            return web.json_response({"data": []})
        return web.json_response({
            "data": [{
                "storeName": "store-1",
                "attachmentPath": f"/tmp/{field.filename}",
                "attachmentName": field.filename,
            }]
        })

    async def send(self, request: web.Request) -> web.Response:
        payload = await request.json()
        if payload["toAddress"] == "reject@example.com":
            return web.json_response({"status": {"description": "Invalid recipient"}}, status=400)
        self.sent.append(payload)
        return web.json_response({"status": {"code": 200}})


@pytest_asyncio.fixture
async def mail_api():
    api = FakeMailApi()
    server = test_utils.TestServer(api.app())
    await server.start_server()
    api.url = f"http://{server.host}:{server.port}"
    yield api
    await server.close()


async def make_transport(api: FakeMailApi, credential: ProviderApiCredential = CREDENTIAL):
    return await ProviderTransport.create(credential, accounts_url=api.url, mail_url=api.url)


def make_message(**overrides) -> EmailMessagePayload:
    data = {"to": "user@example.com", "subject": "Hello", "html": "<p>Hi</p>"}
    data.update(overrides)
    return EmailMessagePayload.model_validate(data)


@pytest.mark.asyncio
async def test_create_exchanges_token_and_resolves_account(mail_api):
    transport = await make_transport(mail_api)
    try:
        assert transport.access_token == "tok-1"
        assert transport.account_id == "123"
        assert transport.stages_attachments is True
    finally:
        await transport.close()

    request = mail_api.token_requests[0]
    assert request["grant_type"] == "client_credentials"
    assert request["client_id"] == "client-id"


@pytest.mark.asyncio
async def test_tokens_are_not_shared_between_transports(mail_api):
    first = await make_transport(mail_api)
    second = await make_transport(mail_api)
    await first.close()
    await second.close()
    assert len(mail_api.token_requests) == 2
    assert first.access_token != second.access_token


@pytest.mark.asyncio
async def test_rejected_client_secret_fails_construction(mail_api):
    bad = ProviderApiCredential(
        id="zoho-main", name="noreply@example.com", provider="zoho",
        client_id="client-id", client_secret="wrong",
    )
    with pytest.raises(TransportConstructionFailed, match="access token"):
        await make_transport(mail_api, bad)


@pytest.mark.asyncio
async def test_missing_account_fails_construction(mail_api):
    mail_api.accounts = []
    with pytest.raises(TransportConstructionFailed, match="No provider account"):
        await make_transport(mail_api)


@pytest.mark.asyncio
async def test_unreachable_provider_fails_construction():
    url = f"http://127.0.0.1:{get_free_port()}"
    with pytest.raises(TransportConstructionFailed):
        await ProviderTransport.create(CREDENTIAL, accounts_url=url, mail_url=url)


@pytest.mark.asyncio
async def test_send_builds_provider_payload(mail_api):
    transport = await make_transport(mail_api)
    staged = [StagedAttachment("store-1", "/tmp/a.txt", "a.txt")]
    try:
        await transport.send(
            make_message(cc=["c1@example.com", "c2@example.com"], replyTo="help@example.com"),
            staged,
        )
    finally:
        await transport.close()

    payload = mail_api.sent[0]
    assert payload["fromAddress"] == "noreply@example.com"
    assert payload["toAddress"] == "user@example.com"
    assert payload["mailFormat"] == "html"
    assert payload["content"] == "<p>Hi</p>"
    assert payload["ccAddress"] == "c1@example.com,c2@example.com"
    assert payload["replyTo"] == "help@example.com"
    assert payload["attachments"] == [
        {"attachmentName": "a.txt", "attachmentPath": "/tmp/a.txt", "storeName": "store-1"}
    ]
    assert "bccAddress" not in payload


def test_plaintext_payload_format():
    transport = ProviderTransport(CREDENTIAL, session=None)  # type: ignore[arg-type]
    payload = transport.build_payload(make_message(html=None, text="plain"), None)
    assert payload["mailFormat"] == "plaintext"
    assert payload["content"] == "plain"
    assert "attachments" not in payload


@pytest.mark.asyncio
async def test_rejected_send_raises_dispatch_failed(mail_api):
    transport = await make_transport(mail_api)
    try:
        with pytest.raises(DispatchFailed, match="Invalid recipient"):
            await transport.send(make_message(to="reject@example.com"))
    finally:
        await transport.close()


@pytest.mark.asyncio
async def test_stager_uploads_every_attachment_in_order(mail_api):
    message = make_message(attachments=[
        {"filename": "a.txt", "content": b64(b"aaa")},
        {"filename": "b.txt", "content": b64(b"bbb")},
    ])
    transport = await make_transport(mail_api)
    try:
        staged = await AttachmentStager().stage_all(transport, message.attachment_list)
    finally:
        await transport.close()

    assert [s.attachment_name for s in staged] == ["a.txt", "b.txt"]
    assert staged[0] == StagedAttachment("store-1", "/tmp/a.txt", "a.txt")
    assert sorted(mail_api.uploads) == ["a.txt", "b.txt"]


@pytest.mark.asyncio
async def test_stager_fails_whole_batch_on_one_error(mail_api):
    message = make_message(attachments=[
        {"filename": "a.txt", "content": b64(b"aaa")},
        {"filename": "broken.txt", "content": b64(b"bbb")},
    ])
    transport = await make_transport(mail_api)
    try:
        with pytest.raises(AttachmentUploadFailed) as exc_info:
            await AttachmentStager().stage_all(transport, message.attachment_list)
    finally:
        await transport.close()

    assert exc_info.value.filename == "broken.txt"
    assert exc_info.value.detail == {"error": "storage full"}


@pytest.mark.asyncio
async def test_malformed_upload_response_is_rejected(mail_api):
    transport = await make_transport(mail_api)
    try:
        with pytest.raises(AttachmentUploadFailed, match="Invalid upload response"):
            await transport.upload_attachment("odd.txt", b"x")
    finally:
        await transport.close()


@pytest.mark.asyncio
async def test_stager_with_no_attachments_skips_uploads(mail_api):
    transport = await make_transport(mail_api)
    try:
        assert await AttachmentStager().stage_all(transport, []) == []
    finally:
        await transport.close()
    assert mail_api.uploads == []
