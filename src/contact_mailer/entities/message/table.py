# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outgoing messages table: audit trail of every send attempt."""

from __future__ import annotations

from typing import Any

from ...sql import Integer, String, Table, Timestamp


class OutgoingMessagesTable(Table):
    """Outgoing messages table. Rows are never deleted.

    Schema: id (autoincrement), credential_id, type, recipient, cc/bcc (JSON),
    reply_to, subject, body_text, body_html, status, error_message,
    created_at, sent_at.
    """

    name = "outgoing_messages"

    def configure(self) -> None:
        c = self.columns
        c.column("id", Integer, primary_key=True)
        c.column("credential_id", String, nullable=False)
        c.column("type", String, nullable=False, default="email")
        c.column("recipient", String, nullable=False)
        c.column("cc", String, json_encoded=True)
        c.column("bcc", String, json_encoded=True)
        c.column("reply_to", String)
        c.column("subject", String)
        c.column("body_text", String)
        c.column("body_html", String)
        c.column("status", String, nullable=False, default="pending")
        c.column("error_message", String)
        c.column("created_at", Timestamp, default="CURRENT_TIMESTAMP")
        c.column("sent_at", Timestamp)

    async def list_recent(
        self, status: str | None = None, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Return the latest rows, optionally filtered by status."""
        where = {"status": status} if status else None
        return await self.select(where=where, order_by="id DESC", limit=limit)
