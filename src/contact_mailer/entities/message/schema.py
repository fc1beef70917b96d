# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic schemas for outgoing email messages."""

from __future__ import annotations

import base64
import binascii
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def reject_line_breaks(value: str | None) -> str | None:
    """Header values must stay on one line."""
    if value is not None and ("\r" in value or "\n" in value):
        raise ValueError("Line breaks are not allowed")
    return value


class AttachmentPayload(BaseModel):
    """Inline email attachment.

    Attributes:
        filename: Plain file name, no path components.
        content: Base64 encoded content, at most 10 MiB once decoded.
        content_type: Optional MIME type (``contentType`` on the wire).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    filename: Annotated[
        str,
        Field(min_length=1, max_length=255, description="Attachment filename")
    ]
    content: Annotated[str, Field(min_length=1, description="Base64 encoded content")]
    content_type: Annotated[
        str | None,
        Field(default=None, alias="contentType", description="MIME type")
    ]

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        if ".." in v or "/" in v or "\\" in v:
            raise ValueError("Invalid filename")
        return v

    @field_validator("filename", "content_type")
    @classmethod
    def validate_single_line(cls, v: str | None) -> str | None:
        return reject_line_breaks(v)

    @model_validator(mode="after")
    def decode_content(self) -> AttachmentPayload:
        try:
            data = base64.b64decode(self.content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Content must be base64 encoded") from exc
        if len(data) > MAX_ATTACHMENT_BYTES:
            raise ValueError("Attachment exceeds 10MB")
        return self

    @property
    def data(self) -> bytes:
        """Decoded attachment bytes."""
        return base64.b64decode(self.content)

    @property
    def mime_type(self) -> str:
        return self.content_type or "application/octet-stream"


class EmailMessagePayload(BaseModel):
    """Outgoing email as accepted from callers.

    At least one of ``text`` or ``html`` is required. ``cc`` and ``bcc``
    accept one address or a list.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    to: Annotated[EmailStr, Field(description="Recipient address")]
    subject: Annotated[str, Field(min_length=1, description="Email subject")]
    text: Annotated[str | None, Field(default=None, description="Plain text body")]
    html: Annotated[str | None, Field(default=None, description="HTML body")]
    cc: Annotated[
        EmailStr | list[EmailStr] | None,
        Field(default=None, description="CC address(es)")
    ]
    bcc: Annotated[
        EmailStr | list[EmailStr] | None,
        Field(default=None, description="BCC address(es)")
    ]
    reply_to: Annotated[
        EmailStr | None,
        Field(default=None, alias="replyTo", description="Reply-To address")
    ]
    attachments: Annotated[
        list[AttachmentPayload] | None,
        Field(default=None, max_length=MAX_ATTACHMENTS, description="Inline attachments")
    ]

    @field_validator("subject")
    @classmethod
    def validate_subject(cls, v: str) -> str:
        return reject_line_breaks(v)

    @model_validator(mode="after")
    def require_body(self) -> EmailMessagePayload:
        if not self.text and not self.html:
            raise ValueError("Either text or html content is required")
        return self

    @staticmethod
    def _as_list(value: str | list[str] | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)

    @property
    def cc_list(self) -> list[str]:
        return self._as_list(self.cc)

    @property
    def bcc_list(self) -> list[str]:
        return self._as_list(self.bcc)

    @property
    def attachment_list(self) -> list[AttachmentPayload]:
        return list(self.attachments or [])


class MessageStatus(str, Enum):
    """Terminal or in-flight status of an outbox row.

    Attributes:
        PENDING: Recorded, dispatch not finished yet.
        SENT: Handed over to the transport.
        FAILED: Dispatch attempted and rejected.
    """

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
