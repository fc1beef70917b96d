# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory and HTTP schemas for the contact mailer.

Endpoints:

- ``GET /health``: liveness, no authentication.
- ``POST /api/email/send``: send one email with a stored credential.
- ``POST /api/email/verify``: handshake with a stored credential.
- ``GET /metrics``: Prometheus exposition.

Every error body is JSON with at least an ``error`` field. Workflow errors
add ``code``, ``stage`` and ``attempted``; a failed dispatch also carries
the ``messageId`` of the recorded row.

Example:
    Creating and running the API application::

        from contact_mailer.core import MailerCore
        from contact_mailer.api import create_app

        core = MailerCore(db_path="/data/contact_mailer.db")
        app = create_app(core, settings)

        uvicorn.run(app, host="0.0.0.0", port=3005)
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from .auth import (
    API_KEY_HEADER,
    CREDENTIAL_KEY_HEADER,
    SERVICE_NAME_HEADER,
    AuthError,
    ServiceAuthenticator,
    check_credential_key,
)
from .config_loader import MailerSettings
from .core import MailerCore
from .errors import (
    AttachmentUploadFailed,
    CredentialNotFound,
    IncompleteCredential,
    InvalidCredentialType,
    MailerError,
    SendFailed,
    StorageError,
    TransportConstructionFailed,
    ValidationError,
    VerificationFailed,
)
from .logger import get_logger
from .rate_limit import RequestRateLimiter

logger = get_logger("API")

api_key_scheme = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
service_name_scheme = APIKeyHeader(name=SERVICE_NAME_HEADER, auto_error=False)
credential_key_scheme = APIKeyHeader(name=CREDENTIAL_KEY_HEADER, auto_error=False)

ERROR_STATUS: list[tuple[type[MailerError], int]] = [
    (ValidationError, 400),
    (CredentialNotFound, 404),
    (InvalidCredentialType, 400),
    (IncompleteCredential, 400),
    (SendFailed, 502),
    (TransportConstructionFailed, 502),
    (AttachmentUploadFailed, 502),
    (VerificationFailed, 502),
    (StorageError, 500),
]


def status_for(exc: MailerError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 500


class SendEmailRequest(BaseModel):
    """Body of ``POST /api/email/send``. The message is validated by the core."""

    model_config = ConfigDict(populate_by_name=True)

    credential_id: str | None = Field(default=None, alias="credentialId")
    message: dict[str, Any] | None = None


class VerifyRequest(BaseModel):
    """Body of ``POST /api/email/verify``."""

    model_config = ConfigDict(populate_by_name=True)

    credential_id: str | None = Field(default=None, alias="credentialId")


class SendEmailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = "Email sent successfully"
    message_id: int = Field(alias="messageId")


class VerifyResponse(BaseModel):
    valid: bool


def create_app(
    svc: MailerCore,
    settings: MailerSettings | None = None,
    *,
    authenticator: ServiceAuthenticator | None = None,
    rate_limiter: RequestRateLimiter | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        svc: The :class:`MailerCore` serving every request.
        settings: Service settings; defaults apply when omitted.
        authenticator: Service authenticator. Built from ``settings`` when
            omitted (disabled when no auth service URL is configured).
        rate_limiter: Per-client limiter. Built from ``settings`` when omitted.
        lifespan: Optional lifespan context manager for startup/shutdown events.

    Returns:
        A configured application ready to be served by Uvicorn.
    """
    settings = settings or MailerSettings()
    authenticator = authenticator or ServiceAuthenticator(
        settings.auth_service_url, settings.target_service
    )
    rate_limiter = rate_limiter or RequestRateLimiter(
        settings.rate_limit_window_seconds, settings.rate_limit_max_requests
    )

    api = FastAPI(title="Contact Mailer", lifespan=lifespan)
    api.state.service = svc
    api.state.settings = settings
    api.state.authenticator = authenticator
    api.state.rate_limiter = rate_limiter

    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=[
            "Content-Type",
            API_KEY_HEADER,
            SERVICE_NAME_HEADER,
            CREDENTIAL_KEY_HEADER,
        ],
    )

    @api.middleware("http")
    async def limit_requests(request: Request, call_next):
        client = request.client.host if request.client else "unknown"
        if not rate_limiter.hit(client):
            logger.warning("Rate limit exceeded for %s", client)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later"},
                headers={"Retry-After": str(rate_limiter.retry_after(client))},
            )
        return await call_next(request)

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error("Validation error on %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_errors(exc.errors())},
        )

    @api.exception_handler(AuthError)
    async def auth_exception_handler(request: Request, exc: AuthError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @api.exception_handler(MailerError)
    async def mailer_exception_handler(request: Request, exc: MailerError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        body = exc.to_dict()
        if isinstance(exc, ValidationError):
            body["details"] = jsonable_errors(exc.details)
        return JSONResponse(status_code=status_code, content=body)

    @api.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "code": "internal_error",
                "stage": None,
                "attempted": False,
            },
        )

    async def require_service(
        request: Request,
        api_key: str | None = Depends(api_key_scheme),
        service_name: str | None = Depends(service_name_scheme),
    ) -> None:
        request.state.caller = await authenticator.verify(api_key, service_name)

    @api.get("/health")
    async def health():
        """Health check endpoint for container monitoring (no authentication required)."""
        return {
            "status": "ok",
            "service": settings.service_name,
            "environment": settings.environment,
        }

    @api.get("/metrics", dependencies=[Depends(require_service)])
    async def metrics():
        """Expose Prometheus metrics for scraping."""
        return Response(
            content=svc.metrics.generate_latest(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    router = APIRouter(prefix="/api/email", tags=["email"], dependencies=[Depends(require_service)])

    @router.post("/send", response_model=SendEmailResponse, response_model_by_alias=True)
    async def send_email(
        body: SendEmailRequest,
        credential_key: str | None = Depends(credential_key_scheme),
    ):
        """Send one email and return the id of the recorded outbox row."""
        await check_credential_key(svc.credentials, body.credential_id, credential_key)
        result = await svc.send_email(body.credential_id, body.message)
        return SendEmailResponse(message_id=result.message_id)

    @router.post("/verify", response_model=VerifyResponse)
    async def verify(
        body: VerifyRequest,
        credential_key: str | None = Depends(credential_key_scheme),
    ):
        """Check that the stored credential can reach its server."""
        await check_credential_key(svc.credentials, body.credential_id, credential_key)
        return VerifyResponse(valid=await svc.verify_connection(body.credential_id))

    api.include_router(router)

    @api.exception_handler(404)
    async def not_found(request: Request, exc: Exception):
        return JSONResponse(status_code=404, content={"error": "Not found"})

    return api


def jsonable_errors(errors: list[Any]) -> list[dict[str, Any]]:
    """Reduce pydantic error entries to JSON-safe ``loc``/``msg``/``type`` dicts."""
    out = []
    for err in errors:
        if isinstance(err, dict):
            out.append({
                "loc": [str(p) for p in err.get("loc", ())],
                "msg": str(err.get("msg", "")),
                "type": str(err.get("type", "")),
            })
    return out

