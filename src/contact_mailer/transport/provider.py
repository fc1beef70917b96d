# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Zoho Mail REST API transport.

Construction performs an OAuth client-credentials exchange followed by an
account lookup. Both are repeated for every transport: tokens and account
ids are never cached across sends.
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from ..entities.credential import ProviderApiCredential
from ..entities.message import EmailMessagePayload
from ..errors import AttachmentUploadFailed, DispatchFailed, TransportConstructionFailed
from ..logger import get_logger
from .base import StagedAttachment, Transport, TransportTimeouts

logger = get_logger("Provider")

DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.eu"
DEFAULT_MAIL_URL = "https://mail.zoho.eu"
OAUTH_SCOPE = "ZohoMail.messages.ALL,ZohoMail.accounts.READ"


async def _error_detail(response: aiohttp.ClientResponse) -> Any:
    try:
        return await response.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return await response.text()


class ProviderTransport(Transport):
    """Bearer-token HTTP client bound to one provider account.

    Use :meth:`create` to obtain a ready instance.
    """

    stages_attachments = True

    def __init__(
        self,
        credential: ProviderApiCredential,
        session: aiohttp.ClientSession,
        *,
        accounts_url: str = DEFAULT_ACCOUNTS_URL,
        mail_url: str = DEFAULT_MAIL_URL,
        timeouts: TransportTimeouts | None = None,
    ):
        self.credential = credential
        self.session = session
        self.accounts_url = accounts_url.rstrip("/")
        self.mail_url = mail_url.rstrip("/")
        self.timeouts = timeouts or TransportTimeouts()
        self.access_token: str | None = None
        self.account_id: str | None = None

    @classmethod
    async def create(
        cls,
        credential: ProviderApiCredential,
        *,
        accounts_url: str = DEFAULT_ACCOUNTS_URL,
        mail_url: str = DEFAULT_MAIL_URL,
        timeouts: TransportTimeouts | None = None,
    ) -> ProviderTransport:
        """Open a session, authenticate and resolve the provider account.

        Raises:
            TransportConstructionFailed: Token exchange or account lookup failed.
        """
        transport = cls(
            credential,
            aiohttp.ClientSession(),
            accounts_url=accounts_url,
            mail_url=mail_url,
            timeouts=timeouts,
        )
        try:
            await transport.authenticate()
        except BaseException:
            await transport.close()
            raise
        return transport

    @property
    def identity(self) -> tuple[Any, ...]:
        return self.credential.identity

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def fetch_access_token(self) -> str:
        params = {
            "client_id": self.credential.client_id,
            "client_secret": self.credential.client_secret,
            "grant_type": "client_credentials",
            "scope": OAUTH_SCOPE,
        }

        async def _request() -> Any:
            async with self.session.post(f"{self.accounts_url}/oauth/v2/token", params=params) as resp:
                if resp.status >= 400:
                    detail = await _error_detail(resp)
                    logger.warning("Token request rejected (status=%s)", resp.status)
                    raise TransportConstructionFailed(
                        f"Failed to get access token: HTTP {resp.status}: {detail}"
                    )
                return await resp.json(content_type=None)

        try:
            data = await asyncio.wait_for(_request(), timeout=self.timeouts.oauth_token)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportConstructionFailed(f"Failed to get access token: {exc!r}") from exc
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise TransportConstructionFailed(f"Failed to get access token: no access_token in {data}")
        return token

    async def fetch_account_id(self) -> str:
        headers = {**self._auth_headers, "Content-Type": "application/json"}

        async def _request() -> Any:
            async with self.session.get(f"{self.mail_url}/api/accounts", headers=headers) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)

        try:
            data = await asyncio.wait_for(_request(), timeout=self.timeouts.account_lookup)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportConstructionFailed(f"Failed to get account id: {exc!r}") from exc
        try:
            account_id = data["data"][0]["accountId"]
        except (KeyError, IndexError, TypeError):
            account_id = None
        if not account_id:
            raise TransportConstructionFailed(f"No provider account found in response: {data}")
        return str(account_id)

    async def authenticate(self) -> None:
        self.access_token = await self.fetch_access_token()
        self.account_id = await self.fetch_account_id()
        logger.debug("Provider account %s resolved for credential '%s'", self.account_id, self.credential.id)

    async def upload_attachment(self, filename: str, data: bytes) -> StagedAttachment:
        """Upload one attachment and return the provider's reference.

        Raises:
            AttachmentUploadFailed: HTTP error or a malformed response body.
        """
        url = f"{self.mail_url}/api/accounts/{self.account_id}/messages/attachments"
        form = aiohttp.FormData()
        form.add_field("attach", data, filename=filename, content_type="application/octet-stream")

        async def _request() -> Any:
            async with self.session.post(
                url, params={"uploadType": "multipart"}, data=form, headers=self._auth_headers
            ) as resp:
                if resp.status >= 400:
                    detail = await _error_detail(resp)
                    raise AttachmentUploadFailed(filename, f"HTTP {resp.status}", detail)
                return await resp.json(content_type=None)

        try:
            body = await asyncio.wait_for(_request(), timeout=self.timeouts.attachment_upload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise AttachmentUploadFailed(filename, repr(exc)) from exc
        try:
            item = body["data"][0]
            return StagedAttachment(
                store_name=item["storeName"],
                attachment_path=item["attachmentPath"],
                attachment_name=item["attachmentName"],
            )
        except (KeyError, IndexError, TypeError) as exc:
            raise AttachmentUploadFailed(filename, "Invalid upload response", body) from exc

    def build_payload(
        self, message: EmailMessagePayload, staged: list[StagedAttachment] | None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "fromAddress": self.credential.from_address,
            "toAddress": message.to,
            "subject": message.subject,
            "content": message.html or message.text,
            "mailFormat": "html" if message.html else "plaintext",
        }
        if message.cc_list:
            payload["ccAddress"] = ",".join(message.cc_list)
        if message.bcc_list:
            payload["bccAddress"] = ",".join(message.bcc_list)
        if message.reply_to:
            payload["replyTo"] = message.reply_to
        if staged:
            payload["attachments"] = [
                {
                    "attachmentName": s.attachment_name,
                    "attachmentPath": s.attachment_path,
                    "storeName": s.store_name,
                }
                for s in staged
            ]
        return payload

    async def send(
        self,
        message: EmailMessagePayload,
        staged: list[StagedAttachment] | None = None,
    ) -> None:
        url = f"{self.mail_url}/api/accounts/{self.account_id}/messages"
        payload = self.build_payload(message, staged)

        async def _request() -> None:
            async with self.session.post(url, json=payload, headers=self._auth_headers) as resp:
                if resp.status >= 400:
                    detail = await _error_detail(resp)
                    raise DispatchFailed(f"Provider rejected message: HTTP {resp.status}: {detail}")

        try:
            await asyncio.wait_for(_request(), timeout=self.timeouts.provider_send)
        except asyncio.TimeoutError as exc:
            raise DispatchFailed("Provider dispatch timed out") from exc
        except aiohttp.ClientError as exc:
            raise DispatchFailed(repr(exc)) from exc

    async def verify(self) -> None:
        await self.authenticate()

    async def close(self) -> None:
        if not self.session.closed:
            await self.session.close()
