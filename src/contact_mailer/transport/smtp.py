# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Direct SMTP transport built on aiosmtplib.

The connection is opened lazily on the first dispatch and kept for reuse.
Before each reuse a NOOP health check runs; a dropped session is replaced
transparently.

TLS behavior based on port and the credential ``secure`` flag:
- Port 465 with secure=True: Direct TLS (implicit TLS)
- Other ports with secure=True: STARTTLS (upgrade plain to TLS)
- secure=False: Plain SMTP (no encryption)
"""

from __future__ import annotations

import asyncio
from email.message import EmailMessage
from typing import Any

import aiosmtplib

from ..entities.credential import SmtpCredential
from ..entities.message import EmailMessagePayload
from ..errors import DispatchFailed
from ..logger import get_logger
from .base import SMTP_NOOP_TIMEOUT, StagedAttachment, Transport, TransportTimeouts

logger = get_logger("SMTP")


def build_email(sender: str, message: EmailMessagePayload) -> EmailMessage:
    """Build the MIME message for a validated payload.

    Text and HTML bodies become a multipart/alternative; attachments are
    added with their declared content type.
    """
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = message.to
    msg["Subject"] = message.subject
    if message.cc_list:
        msg["Cc"] = ", ".join(message.cc_list)
    if message.reply_to:
        msg["Reply-To"] = message.reply_to

    if message.text:
        msg.set_content(message.text)
        if message.html:
            msg.add_alternative(message.html, subtype="html")
    else:
        msg.set_content(message.html or "", subtype="html")

    for att in message.attachment_list:
        maintype, _, subtype = att.mime_type.partition("/")
        msg.add_attachment(
            att.data,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=att.filename,
        )
    return msg


class SmtpTransport(Transport):
    """SMTP transport holding at most one live aiosmtplib session."""

    def __init__(self, credential: SmtpCredential, timeouts: TransportTimeouts | None = None):
        self.credential = credential
        self.timeouts = timeouts or TransportTimeouts()
        self._smtp: aiosmtplib.SMTP | None = None
        self._send_lock = asyncio.Lock()
        self.connections_opened = 0

    @property
    def identity(self) -> tuple[Any, ...]:
        return self.credential.identity

    @property
    def sender(self) -> str:
        username = self.credential.username or ""
        return username if "@" in username else self.credential.name

    async def _connect(self) -> aiosmtplib.SMTP:
        cred = self.credential
        if cred.secure and cred.port == 465:
            smtp = aiosmtplib.SMTP(hostname=cred.host, port=cred.port, start_tls=False, use_tls=True, timeout=10.0)
        elif cred.secure:
            smtp = aiosmtplib.SMTP(hostname=cred.host, port=cred.port, start_tls=True, use_tls=False, timeout=10.0)
        else:
            smtp = aiosmtplib.SMTP(hostname=cred.host, port=cred.port, start_tls=False, use_tls=False, timeout=10.0)

        async def _do_connect() -> None:
            await smtp.connect()
            if cred.username and cred.password:
                await smtp.login(cred.username, cred.password)

        try:
            await asyncio.wait_for(_do_connect(), timeout=self.timeouts.smtp_connect)
        except BaseException:
            smtp.close()
            raise
        self.connections_opened += 1
        logger.debug("Connected to %s:%s for credential '%s'", cred.host, cred.port, cred.id)
        return smtp

    async def _is_alive(self, smtp: aiosmtplib.SMTP) -> bool:
        try:
            code, _ = await asyncio.wait_for(smtp.noop(), timeout=SMTP_NOOP_TIMEOUT)
            return code == 250
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError):
            return False

    async def _session(self) -> aiosmtplib.SMTP:
        if self._smtp is not None:
            if await self._is_alive(self._smtp):
                return self._smtp
            logger.info("SMTP session for '%s' dropped, reconnecting", self.credential.id)
            await self._discard()
        self._smtp = await self._connect()
        return self._smtp

    async def _discard(self) -> None:
        smtp, self._smtp = self._smtp, None
        if smtp is None:
            return
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            logger.debug("Ignoring error while closing SMTP session: %s", exc)
            smtp.close()

    async def send(
        self,
        message: EmailMessagePayload,
        staged: list[StagedAttachment] | None = None,
    ) -> None:
        try:
            msg = build_email(self.sender, message)
        except ValueError as exc:
            raise DispatchFailed(f"Cannot build message: {exc}") from exc
        recipients = [message.to, *message.cc_list, *message.bcc_list]
        try:
            async with self._send_lock:
                smtp = await self._session()
                await asyncio.wait_for(
                    smtp.send_message(msg, sender=self.sender, recipients=recipients),
                    timeout=self.timeouts.smtp_send,
                )
        except asyncio.TimeoutError as exc:
            await self._discard()
            raise DispatchFailed("SMTP dispatch timed out") from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            await self._discard()
            raise DispatchFailed(str(exc) or type(exc).__name__) from exc

    async def verify(self) -> None:
        smtp = await self._connect()
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.debug("Ignoring error on QUIT after verify: %s", exc)
            smtp.close()

    async def close(self) -> None:
        await self._discard()
