# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Send workflow for the contact mailer.

:class:`MailerCore` ties the credential store, transport resolver,
attachment stager and outbox recorder together. One call to
:meth:`MailerCore.send_email` runs inside one database transaction:

1. the pending outbox row is inserted and its id captured;
2. the credential is loaded and checked;
3. a transport is resolved (reused for the same SMTP credential);
4. attachments are persisted (SMTP) or uploaded to the provider;
5. the message is dispatched exactly once;
6. the row moves to ``sent`` or ``failed`` and the transaction commits.

Any error before dispatch rolls the transaction back, so no row survives.
A dispatch failure is recorded, committed, and then raised as
:class:`SendFailed`.

Example:
    Sending one message::

        core = MailerCore(db_path="/data/contact_mailer.db")
        await core.init()
        result = await core.send_email("acme", {
            "to": "user@example.com",
            "subject": "Hello",
            "text": "Hi there",
        })
        await core.close()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pydantic

from .credentials import CredentialStore
from .entities.message import EmailMessagePayload, MessageStatus
from .errors import (
    STAGE_ATTACHMENTS,
    STAGE_CREDENTIAL,
    STAGE_DISPATCH,
    STAGE_STORAGE,
    STAGE_TRANSPORT,
    DispatchFailed,
    InternalError,
    MailerError,
    SendFailed,
    ValidationError,
)
from .logger import get_logger
from .mailer_db import MailerDb
from .outbox import Failed, OutboxRecorder, Sent
from .prometheus import MailerMetrics
from .transport import (
    AttachmentStager,
    StagedAttachment,
    TransportResolver,
    TransportTimeouts,
)
from .transport.provider import DEFAULT_ACCOUNTS_URL, DEFAULT_MAIL_URL


@dataclass(frozen=True)
class SendResult:
    """Outcome of a successful send."""

    message_id: int
    status: str = MessageStatus.SENT.value


def parse_message(message: EmailMessagePayload | dict[str, Any]) -> EmailMessagePayload:
    """Validate a raw message dict, or pass through an already validated payload.

    Raises:
        ValidationError: The payload is malformed. ``details`` holds the
            pydantic error list.
    """
    if isinstance(message, EmailMessagePayload):
        return message
    try:
        return EmailMessagePayload.model_validate(message)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid message format", exc.errors(include_url=False, include_context=False)
        ) from exc


class MailerCore:
    """Coordinates one send attempt end to end.

    Owns the transport resolver and therefore its single-slot cache; two
    ``MailerCore`` instances never share a transport.
    """

    def __init__(
        self,
        *,
        db_path: str = "/data/contact_mailer.db",
        db: MailerDb | None = None,
        logger=None,
        metrics: MailerMetrics | None = None,
        timeouts: TransportTimeouts | None = None,
        db_busy_timeout: float | None = None,
        accounts_url: str = DEFAULT_ACCOUNTS_URL,
        mail_url: str = DEFAULT_MAIL_URL,
        resolver: TransportResolver | None = None,
    ):
        """Initialize the core.

        Args:
            db_path: Database connection string, used when ``db`` is not given.
            db: Pre-built database manager.
            logger: Custom logger instance. If None, uses default logger.
            metrics: Prometheus metrics collector. If None, creates new instance.
            timeouts: Network step timeouts for transports.
            db_busy_timeout: SQLite lock wait in seconds. Defaults to the
                transaction budget of ``timeouts``, so concurrent sends queue
                behind an in-flight dispatch instead of failing.
            accounts_url: Provider OAuth base URL.
            mail_url: Provider mail API base URL.
            resolver: Pre-built transport resolver (tests inject factories here).
        """
        timeouts = timeouts or TransportTimeouts()
        if db_busy_timeout is None:
            db_busy_timeout = timeouts.transaction_budget
        self.db = db or MailerDb(db_path, busy_timeout=db_busy_timeout)
        self.logger = logger or get_logger("MailerCore")
        self.metrics = metrics or MailerMetrics()
        self.credentials = CredentialStore(self.db)
        self.outbox = OutboxRecorder(self.db)
        self.stager = AttachmentStager()
        self.resolver = resolver or TransportResolver(
            self.credentials,
            timeouts=timeouts,
            accounts_url=accounts_url,
            mail_url=mail_url,
            metrics=self.metrics,
        )

    async def init(self) -> None:
        """Connect to the database and create missing tables."""
        await self.db.init_db()

    async def close(self) -> None:
        """Close the cached transport and the database."""
        await self.resolver.close()
        await self.db.close()

    async def send_email(
        self, credential_id: str, message: EmailMessagePayload | dict[str, Any]
    ) -> SendResult:
        """Send one email with the stored credential ``credential_id``.

        Returns:
            SendResult with the id of the ``sent`` outbox row.

        Raises:
            ValidationError: Malformed message, nothing recorded.
            CredentialNotFound, InvalidCredentialType, IncompleteCredential:
                Credential unusable, transaction rolled back.
            TransportConstructionFailed, AttachmentUploadFailed: Failure
                before dispatch, transaction rolled back.
            SendFailed: Dispatch attempted and rejected. The ``failed`` row
                is committed and its id is ``message_id``.
            StorageError: Database failure, transaction rolled back.
            InternalError: Unexpected exception inside a stage, transaction
                rolled back.
        """
        payload = parse_message(message)
        stage = STAGE_STORAGE
        failure: DispatchFailed | None = None
        try:
            async with self.db.transaction() as tx:
                message_id = await self.outbox.record_pending(tx, credential_id, payload)

                stage = STAGE_CREDENTIAL
                credential = await self.credentials.get_email_credential(credential_id, tx=tx)

                stage = STAGE_TRANSPORT
                transport = await self.resolver.resolve(credential)
                try:
                    stage = STAGE_ATTACHMENTS
                    staged: list[StagedAttachment] | None = None
                    if transport.stages_attachments:
                        staged = await self.stager.stage_all(transport, payload.attachment_list)  # type: ignore[arg-type]
                    else:
                        await self.outbox.record_attachments(tx, message_id, payload.attachment_list)

                    stage = STAGE_DISPATCH
                    try:
                        await transport.send(payload, staged)
                    except DispatchFailed as exc:
                        failure = exc
                        await self.outbox.record_outcome(tx, message_id, Failed(str(exc)))
                    else:
                        await self.outbox.record_outcome(tx, message_id, Sent())
                finally:
                    await self.resolver.release(transport)
        except MailerError as exc:
            self.metrics.inc_aborted(credential_id, exc.stage)
            self.logger.warning(
                "Send with credential '%s' aborted at %s stage: %s", credential_id, stage, exc
            )
            raise
        except Exception as exc:
            self.metrics.inc_aborted(credential_id, stage)
            self.logger.exception(
                "Send with credential '%s' crashed at %s stage", credential_id, stage
            )
            raise InternalError(f"Unexpected failure at {stage} stage: {exc}", stage=stage) from exc

        if failure is not None:
            self.metrics.inc_failed(credential_id)
            self.logger.error(
                "Message %s with credential '%s' failed: %s", message_id, credential_id, failure
            )
            raise SendFailed(message_id, failure) from failure

        self.metrics.inc_sent(credential_id)
        self.logger.info("Message %s sent with credential '%s'", message_id, credential_id)
        return SendResult(message_id=message_id)

    async def verify_connection(self, credential_id: str) -> bool:
        """Handshake with a disposable transport; never touches the outbox.

        Raises:
            CredentialNotFound, InvalidCredentialType, IncompleteCredential:
                Credential unusable.
            VerificationFailed: The handshake did not succeed.
        """
        return await self.resolver.verify_connection(credential_id)

    async def list_messages(self, status: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        return await self.db.messages.list_recent(status=status, limit=limit)
