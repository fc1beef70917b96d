# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Attachments persisted alongside SMTP sends."""

from __future__ import annotations

from typing import Any

from ...sql import Blob, Integer, String, Table, Timestamp


class MessageAttachmentsTable(Table):
    """Attachment rows keyed by the outgoing message they belong to."""

    name = "message_attachments"

    def configure(self) -> None:
        c = self.columns
        c.column("id", Integer, primary_key=True)
        c.column("message_id", Integer, nullable=False)
        c.column("filename", String, nullable=False)
        c.column("content_type", String)
        c.column("size_bytes", Integer, nullable=False)
        c.column("content", Blob)
        c.column("created_at", Timestamp, default="CURRENT_TIMESTAMP")

    async def list_for_message(self, message_id: int) -> list[dict[str, Any]]:
        return await self.select(
            columns=["id", "message_id", "filename", "content_type", "size_bytes"],
            where={"message_id": message_id},
            order_by="id",
        )
