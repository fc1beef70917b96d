import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import CREDENTIAL_KEY, smtp_credential_row
from contact_mailer.api import create_app
from contact_mailer.auth import AuthError
from contact_mailer.config_loader import MailerSettings
from contact_mailer.core import MailerCore
from contact_mailer.rate_limit import RequestRateLimiter
from contact_mailer.transport import TransportResolver

MESSAGE = {"to": "user@example.com", "subject": "Contact", "text": "Hello"}
HEADERS = {"X-Credential-Key": CREDENTIAL_KEY}


class StubAuthenticator:
    """Accepts exactly one service key."""

    def __init__(self, key: str = "service-key"):
        self.key = key

    async def verify(self, api_key, service_name):
        if not api_key or not service_name:
            raise AuthError(401, "Missing authentication credentials")
        if api_key != self.key:
            raise AuthError(401, "Invalid authentication credentials")
        return {"service": service_name}


@pytest.fixture
def service(db_path, factories):
    svc = MailerCore(db_path=db_path)
    svc.resolver = TransportResolver(
        svc.credentials,
        metrics=svc.metrics,
        smtp_factory=factories.smtp,
        provider_factory=factories.provider,
    )

    async def _setup():
        await svc.init()
        await svc.credentials.add(smtp_credential_row(2525))

    asyncio.run(_setup())
    return svc


@pytest.fixture
def settings():
    return MailerSettings(service_name="contact-service", environment="test")


@pytest.fixture
def client(service, settings):
    return TestClient(create_app(service, settings))


def test_health_needs_no_authentication(service, settings):
    app = create_app(service, settings, authenticator=StubAuthenticator())
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "contact-service", "environment": "test"}


def test_send_email_success(client, service, factories):
    response = client.post(
        "/api/email/send", json={"credentialId": "acme", "message": MESSAGE}, headers=HEADERS
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Email sent successfully", "messageId": 1}
    assert len(factories.smtp_built[0].sent) == 1


def test_send_email_requires_credential_key(client):
    response = client.post("/api/email/send", json={"credentialId": "acme", "message": MESSAGE})
    assert response.status_code == 401
    assert response.json() == {"error": "Credential API key is required"}


def test_send_email_rejects_wrong_credential_key(client):
    response = client.post(
        "/api/email/send",
        json={"credentialId": "acme", "message": MESSAGE},
        headers={"X-Credential-Key": "nope"},
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credential API key"}


def test_send_email_requires_credential_id(client):
    response = client.post("/api/email/send", json={"message": MESSAGE}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json() == {"error": "Credential ID is required"}


def test_send_email_invalid_message(client):
    response = client.post(
        "/api/email/send",
        json={"credentialId": "acme", "message": {"to": "nobody", "subject": "x", "text": "y"}},
        headers=HEADERS,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid message format"
    assert body["code"] == "validation_error"
    assert any(d["loc"] == ["to"] for d in body["details"])


def test_send_email_missing_message(client):
    response = client.post("/api/email/send", json={"credentialId": "acme"}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid message format"


def test_malformed_body_is_rejected(client):
    response = client.post(
        "/api/email/send",
        content="not json",
        headers={**HEADERS, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_dispatch_failure_returns_message_id(client, factories):
    factories.smtp_fail = "550 Mailbox not found"
    response = client.post(
        "/api/email/send", json={"credentialId": "acme", "message": MESSAGE}, headers=HEADERS
    )
    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "Failed to send email: 550 Mailbox not found"
    assert body["code"] == "send_failed"
    assert body["attempted"] is True
    assert body["messageId"] == 1


def test_incomplete_credential_is_client_error(service, settings):
    asyncio.run(service.credentials.add(smtp_credential_row(2525, host=None)))
    client = TestClient(create_app(service, settings))
    response = client.post(
        "/api/email/send", json={"credentialId": "acme", "message": MESSAGE}, headers=HEADERS
    )
    assert response.status_code == 400
    assert response.json()["code"] == "incomplete_credential"
    assert response.json()["attempted"] is False


def test_verify_endpoint(client, factories):
    response = client.post("/api/email/verify", json={"credentialId": "acme"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"valid": True}

    factories.smtp_fail = "connection refused"
    response = client.post("/api/email/verify", json={"credentialId": "acme"}, headers=HEADERS)
    assert response.status_code == 502
    assert response.json()["code"] == "verification_failed"


def test_service_authentication_is_enforced(service, settings):
    client = TestClient(create_app(service, settings, authenticator=StubAuthenticator()))
    payload = {"credentialId": "acme", "message": MESSAGE}

    missing = client.post("/api/email/send", json=payload, headers=HEADERS)
    assert missing.status_code == 401
    assert missing.json() == {"error": "Missing authentication credentials"}

    wrong = client.post(
        "/api/email/send",
        json=payload,
        headers={**HEADERS, "X-API-Key": "bad", "X-Service-Name": "web"},
    )
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid authentication credentials"}

    ok = client.post(
        "/api/email/send",
        json=payload,
        headers={**HEADERS, "X-API-Key": "service-key", "X-Service-Name": "web"},
    )
    assert ok.status_code == 200


def test_rate_limit_answers_429(service, settings):
    limiter = RequestRateLimiter(window_seconds=60, max_requests=2)
    client = TestClient(create_app(service, settings, rate_limiter=limiter))

    assert client.get("/health").status_code == 200
    assert client.get("/health").status_code == 200
    response = client.get("/health")

    assert response.status_code == 429
    assert response.json() == {"error": "Too many requests, please try again later"}
    assert int(response.headers["Retry-After"]) > 0


def test_metrics_endpoint(client):
    client.post("/api/email/send", json={"credentialId": "acme", "message": MESSAGE}, headers=HEADERS)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert 'cm_sent_total{credential_id="acme"} 1.0' in response.text


def test_unknown_route_returns_json_404(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}


def test_header_injection_in_subject_is_client_error(client):
    message = {**MESSAGE, "subject": "Hi\nBcc: x@evil.test"}
    response = client.post(
        "/api/email/send", json={"credentialId": "acme", "message": message}, headers=HEADERS
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_unexpected_errors_return_json_500(service, settings, monkeypatch):
    async def crash(credential_id):
        raise RuntimeError("driver crashed")

    monkeypatch.setattr(service, "verify_connection", crash)
    client = TestClient(create_app(service, settings), raise_server_exceptions=False)

    response = client.post("/api/email/verify", json={"credentialId": "acme"}, headers=HEADERS)

    assert response.status_code == 500
    assert response.json() == {
        "error": "Internal server error",
        "code": "internal_error",
        "stage": None,
        "attempted": False,
    }
