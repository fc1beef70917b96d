# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Domain entities for the contact mailer.

Each subdirectory contains:
- table.py: SQL table manager
- schema.py: Pydantic schemas and typed records, where the entity has them
"""

from .attachment.table import MessageAttachmentsTable
from .credential.table import CredentialsTable
from .message.table import OutgoingMessagesTable

__all__ = [
    "CredentialsTable",
    "MessageAttachmentsTable",
    "OutgoingMessagesTable",
]
