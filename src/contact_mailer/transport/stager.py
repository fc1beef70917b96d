# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Upload attachments to a provider ahead of the send request."""

from __future__ import annotations

import asyncio

from ..entities.message import AttachmentPayload
from ..errors import AttachmentUploadFailed
from ..logger import get_logger
from .base import StagedAttachment
from .provider import ProviderTransport

logger = get_logger("Stager")


class AttachmentStager:
    """Stages every attachment of one message concurrently.

    Uploads share nothing but the transport's bearer token, so they are
    issued in parallel. One failed upload fails the whole batch; no partial
    list is ever returned.
    """

    async def stage(
        self, transport: ProviderTransport, attachment: AttachmentPayload
    ) -> StagedAttachment:
        return await transport.upload_attachment(attachment.filename, attachment.data)

    async def stage_all(
        self, transport: ProviderTransport, attachments: list[AttachmentPayload]
    ) -> list[StagedAttachment]:
        if not attachments:
            return []
        results = await asyncio.gather(
            *[self.stage(transport, att) for att in attachments],
            return_exceptions=True,
        )
        staged: list[StagedAttachment] = []
        for att, result in zip(attachments, results, strict=True):
            if isinstance(result, AttachmentUploadFailed):
                logger.error("Attachment %s upload failed - message will not be sent", att.filename)
                raise result
            if isinstance(result, BaseException):
                raise AttachmentUploadFailed(att.filename, repr(result)) from result
            staged.append(result)
        logger.debug("Staged %d attachment(s)", len(staged))
        return staged
