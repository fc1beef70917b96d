# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outbox recorder: audit rows for every send attempt.

Every function takes the caller's open transaction session and never opens
or commits one itself. A row starts ``pending`` and moves exactly once to
``sent`` or ``failed``.
"""

from __future__ import annotations

from dataclasses import dataclass

from .entities.message import AttachmentPayload, EmailMessagePayload, MessageStatus
from .errors import StorageError
from .mailer_db import MailerDb
from .sql import DbSession


@dataclass(frozen=True)
class Sent:
    """Dispatch accepted by the transport."""


@dataclass(frozen=True)
class Failed:
    """Dispatch rejected; ``error`` is stored as the row's error message."""

    error: str


Outcome = Sent | Failed


class OutboxRecorder:
    def __init__(self, db: MailerDb):
        self.db = db

    async def record_pending(
        self, tx: DbSession, credential_id: str, message: EmailMessagePayload
    ) -> int:
        """Insert the pending row and return its store-generated id."""
        return await self.db.messages.insert(
            {
                "credential_id": credential_id,
                "type": "email",
                "recipient": message.to,
                "cc": message.cc_list,
                "bcc": message.bcc_list,
                "reply_to": message.reply_to,
                "subject": message.subject,
                "body_text": message.text,
                "body_html": message.html,
                "status": MessageStatus.PENDING.value,
            },
            tx=tx,
        )

    async def record_attachments(
        self, tx: DbSession, message_id: int, attachments: list[AttachmentPayload]
    ) -> None:
        for att in attachments:
            data = att.data
            await self.db.attachments.insert(
                {
                    "message_id": message_id,
                    "filename": att.filename,
                    "content_type": att.mime_type,
                    "size_bytes": len(data),
                    "content": data,
                },
                tx=tx,
            )

    async def record_outcome(self, tx: DbSession, message_id: int, outcome: Outcome) -> None:
        """Move a pending row to its terminal status.

        Raises:
            StorageError: The row is missing or already terminal.
        """
        if isinstance(outcome, Sent):
            query = (
                "UPDATE outgoing_messages SET status = :status, sent_at = CURRENT_TIMESTAMP "
                "WHERE id = :id AND status = :pending"
            )
            params = {"status": MessageStatus.SENT.value}
        else:
            query = (
                "UPDATE outgoing_messages SET status = :status, error_message = :error "
                "WHERE id = :id AND status = :pending"
            )
            params = {"status": MessageStatus.FAILED.value, "error": outcome.error}
        params.update(id=message_id, pending=MessageStatus.PENDING.value)
        updated = await tx.execute(query, params)
        if updated != 1:
            raise StorageError(f"Message {message_id} is not pending, outcome not recorded")
