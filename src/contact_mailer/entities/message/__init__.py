# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outgoing message entity."""

from .schema import (
    MAX_ATTACHMENT_BYTES,
    MAX_ATTACHMENTS,
    AttachmentPayload,
    EmailMessagePayload,
    MessageStatus,
)
from .table import OutgoingMessagesTable

__all__ = [
    "MAX_ATTACHMENTS",
    "MAX_ATTACHMENT_BYTES",
    "AttachmentPayload",
    "EmailMessagePayload",
    "MessageStatus",
    "OutgoingMessagesTable",
]
