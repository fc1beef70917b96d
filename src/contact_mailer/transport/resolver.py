# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Map credentials to transports, reusing the last SMTP transport.

The resolver owns a single cache slot: the most recently built SMTP
transport and the credential identity it was built for. A request for the
same identity reuses it; any other identity builds a new transport, closes
the old one and takes the slot. Provider transports are built fresh for
every send and never enter the slot.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import aiosmtplib

from ..credentials import CredentialStore
from ..entities.credential import EmailCredential, ProviderApiCredential, SmtpCredential
from ..errors import MailerError, TransportConstructionFailed, VerificationFailed
from ..logger import get_logger
from ..prometheus import MailerMetrics
from .base import Transport, TransportTimeouts
from .provider import DEFAULT_ACCOUNTS_URL, DEFAULT_MAIL_URL, ProviderTransport
from .smtp import SmtpTransport

logger = get_logger("Resolver")

SmtpFactory = Callable[[SmtpCredential, TransportTimeouts], Transport]
ProviderFactory = Callable[..., Awaitable[Transport]]


class TransportResolver:
    def __init__(
        self,
        store: CredentialStore,
        *,
        timeouts: TransportTimeouts | None = None,
        accounts_url: str = DEFAULT_ACCOUNTS_URL,
        mail_url: str = DEFAULT_MAIL_URL,
        metrics: MailerMetrics | None = None,
        smtp_factory: SmtpFactory = SmtpTransport,
        provider_factory: ProviderFactory = ProviderTransport.create,
    ):
        self.store = store
        self.timeouts = timeouts or TransportTimeouts()
        self.accounts_url = accounts_url
        self.mail_url = mail_url
        self.metrics = metrics
        self._smtp_factory = smtp_factory
        self._provider_factory = provider_factory
        self._cached: Transport | None = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> Transport | None:
        return self._cached

    async def _build(self, credential: EmailCredential) -> Transport:
        if isinstance(credential, ProviderApiCredential):
            transport = await self._provider_factory(
                credential,
                accounts_url=self.accounts_url,
                mail_url=self.mail_url,
                timeouts=self.timeouts,
            )
            kind = credential.provider
        else:
            try:
                transport = self._smtp_factory(credential, self.timeouts)
            except (TypeError, ValueError) as exc:
                raise TransportConstructionFailed(
                    f"Cannot build SMTP transport for '{credential.id}': {exc}"
                ) from exc
            kind = "smtp"
        if self.metrics is not None:
            self.metrics.inc_transport_build(kind)
        return transport

    async def resolve(self, credential: EmailCredential) -> Transport:
        """Return a transport ready to dispatch for ``credential``.

        Raises:
            TransportConstructionFailed: The transport could not be built.
        """
        if isinstance(credential, ProviderApiCredential):
            return await self._build(credential)

        async with self._lock:
            cached = self._cached
            if cached is not None and cached.identity == credential.identity:
                return cached
            transport = await self._build(credential)
            self._cached = transport
        if cached is not None:
            logger.info("Credential changed, replacing cached transport")
            await cached.close()
        return transport

    async def release(self, transport: Transport) -> None:
        """Close a transport unless it occupies the cache slot."""
        if transport is not self._cached:
            await transport.close()

    async def verify_connection(self, credential_id: str) -> bool:
        """Handshake with a disposable transport built for ``credential_id``.

        The cache slot is never read or written.

        Raises:
            CredentialNotFound, InvalidCredentialType, IncompleteCredential:
                The credential cannot be used for email.
            VerificationFailed: The handshake did not succeed.
        """
        credential = await self.store.get_email_credential(credential_id)
        transport: Transport | None = None
        try:
            if isinstance(credential, ProviderApiCredential):
                transport = await self._provider_factory(
                    credential,
                    accounts_url=self.accounts_url,
                    mail_url=self.mail_url,
                    timeouts=self.timeouts,
                )
            else:
                transport = self._smtp_factory(credential, self.timeouts)
                await transport.verify()
        except (MailerError, aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise VerificationFailed(f"Failed to verify email connection: {exc}") from exc
        finally:
            if transport is not None:
                await transport.close()
        logger.info("Connection verified for credential '%s'", credential_id)
        return True

    async def close(self) -> None:
        async with self._lock:
            cached, self._cached = self._cached, None
        if cached is not None:
            await cached.close()
