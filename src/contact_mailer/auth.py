# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Caller authentication for the HTTP API.

Two independent checks guard every mail endpoint:

- service authentication: the calling service presents ``X-API-Key`` and
  ``X-Service-Name``; both are forwarded to the auth authority, which
  answers 2xx for an allowed caller and 401 otherwise;
- credential authentication: ``X-Credential-Key`` must match the hash
  stored with the credential named in the request body.
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from .credentials import CredentialStore
from .errors import StorageError
from .logger import get_logger

logger = get_logger("Auth")

API_KEY_HEADER = "X-API-Key"
SERVICE_NAME_HEADER = "X-Service-Name"
TARGET_SERVICE_HEADER = "X-Target-Service"
CREDENTIAL_KEY_HEADER = "X-Credential-Key"


class AuthError(Exception):
    """Authentication failure carrying the HTTP status to answer with."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ServiceAuthenticator:
    """Delegates service-to-service authentication to the auth authority.

    When no authority URL is configured the check is bypassed.
    """

    def __init__(
        self,
        auth_service_url: str | None,
        target_service: str = "contact-service",
        timeout: float = 10.0,
    ):
        self.auth_service_url = auth_service_url.rstrip("/") if auth_service_url else None
        self.target_service = target_service
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.auth_service_url is not None

    async def verify(self, api_key: str | None, service_name: str | None) -> dict[str, Any] | None:
        """Return the authority's description of the caller.

        Raises:
            AuthError: 401 for missing or rejected credentials, 500 when the
                authority cannot be reached or answers unexpectedly.
        """
        if not self.enabled:
            return None
        if not api_key or not service_name:
            raise AuthError(401, "Missing authentication credentials")

        headers = {
            API_KEY_HEADER: api_key,
            SERVICE_NAME_HEADER: service_name,
            TARGET_SERVICE_HEADER: self.target_service,
        }
        url = f"{self.auth_service_url}/api/auth/verify"

        async def _request() -> Any:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json={}, headers=headers) as resp:
                    if resp.status == 401:
                        raise AuthError(401, "Invalid authentication credentials")
                    resp.raise_for_status()
                    return await resp.json(content_type=None)

        try:
            return await asyncio.wait_for(_request(), timeout=self.timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("Service authentication error for '%s': %r", service_name, exc)
            raise AuthError(500, "Authentication failed") from exc


async def check_credential_key(
    store: CredentialStore, credential_id: str | None, api_key: str | None
) -> None:
    """Validate the per-credential key for ``credential_id``.

    Raises:
        AuthError: 401 missing or wrong key, 400 missing credential id,
            500 when the store cannot be queried.
    """
    if not api_key:
        raise AuthError(401, "Credential API key is required")
    if not credential_id:
        raise AuthError(400, "Credential ID is required")
    try:
        valid = await store.validate_api_key(credential_id, api_key)
    except StorageError as exc:
        logger.error("Credential API key validation failed: %s", exc)
        raise AuthError(500, "Credential API key validation failed") from exc
    if not valid:
        raise AuthError(401, "Invalid credential API key")
