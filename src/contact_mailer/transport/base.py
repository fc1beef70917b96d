# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Transport interface shared by the SMTP and provider API implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..entities.message import EmailMessagePayload

SMTP_NOOP_TIMEOUT = 5.0
STORAGE_MARGIN = 10.0


@dataclass(frozen=True)
class StagedAttachment:
    """Opaque reference returned by a provider for an uploaded attachment.

    The three fields are passed back to the provider unmodified.
    """

    store_name: str
    attachment_path: str
    attachment_name: str


@dataclass(frozen=True)
class TransportTimeouts:
    """Upper bounds, in seconds, for every network step of a send."""

    smtp_connect: float = 15.0
    smtp_send: float = 30.0
    oauth_token: float = 15.0
    account_lookup: float = 15.0
    attachment_upload: float = 30.0
    provider_send: float = 30.0

    @property
    def transaction_budget(self) -> float:
        """Longest time one send can keep its database transaction open."""
        smtp = SMTP_NOOP_TIMEOUT + self.smtp_connect + self.smtp_send
        provider = self.oauth_token + self.account_lookup + self.attachment_upload + self.provider_send
        return max(smtp, provider) + STORAGE_MARGIN


class Transport(ABC):
    """A ready-to-dispatch channel bound to exactly one credential identity."""

    #: True when attachments must be uploaded before ``send``.
    stages_attachments = False

    @property
    @abstractmethod
    def identity(self) -> tuple[Any, ...]:
        """Identity of the credential this transport was built for."""

    @abstractmethod
    async def send(
        self,
        message: EmailMessagePayload,
        staged: list[StagedAttachment] | None = None,
    ) -> None:
        """Dispatch one message.

        Raises:
            DispatchFailed: The transport did not accept the message.
        """

    @abstractmethod
    async def verify(self) -> None:
        """Perform the protocol handshake, raising the underlying error on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Release network resources. Safe to call more than once."""
