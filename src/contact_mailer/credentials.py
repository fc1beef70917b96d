# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Credential store: typed lookups and per-credential key checks."""

from __future__ import annotations

import secrets

from .entities.credential import (
    Credential,
    EmailCredential,
    OtherChannelCredential,
    credential_from_row,
    hash_api_key,
)
from .errors import CredentialNotFound, InvalidCredentialType
from .logger import get_logger
from .mailer_db import MailerDb
from .sql import DbSession

logger = get_logger("Credentials")


class CredentialStore:
    """Read access to stored credentials.

    Rows are turned into :class:`SmtpCredential`, :class:`ProviderApiCredential`
    or :class:`OtherChannelCredential` here, so callers never inspect raw
    column presence. Database failures surface as :class:`StorageError`.
    """

    def __init__(self, db: MailerDb):
        self.db = db

    async def find_by_id(
        self, credential_id: str, tx: DbSession | None = None
    ) -> Credential | None:
        """Return the typed credential, or None when no row exists.

        Raises:
            IncompleteCredential: The row exists but lacks required fields.
            StorageError: The lookup failed.
        """
        row = await self.db.credentials.get(credential_id, tx=tx)
        if row is None:
            return None
        return credential_from_row(row)

    async def get_email_credential(
        self, credential_id: str, tx: DbSession | None = None
    ) -> EmailCredential:
        """Return an email credential or raise the matching credential error.

        Raises:
            CredentialNotFound: No row for ``credential_id``.
            InvalidCredentialType: The credential serves another channel.
            IncompleteCredential: Required connection fields are missing.
        """
        credential = await self.find_by_id(credential_id, tx=tx)
        if credential is None:
            raise CredentialNotFound(credential_id)
        if isinstance(credential, OtherChannelCredential):
            raise InvalidCredentialType(credential_id, credential.type)
        return credential

    async def find_by_type(self, type_: str) -> list[dict]:
        """Return raw credential rows of one channel type, newest first.

        Secrets are stripped from the returned rows.
        """
        rows = await self.db.credentials.list_by_type(type_)
        return [_public(row) for row in rows]

    async def validate_api_key(self, credential_id: str, api_key: str) -> bool:
        """Check a raw per-credential key against the stored hash.

        Returns False for unknown credentials and credentials without a key.
        """
        row = await self.db.credentials.get(credential_id)
        if row is None or not row.get("api_key_hash"):
            return False
        return secrets.compare_digest(row["api_key_hash"], hash_api_key(api_key))

    async def add(self, cred: dict) -> None:
        await self.db.credentials.add(cred)
        logger.info("Credential '%s' stored", cred["id"])

    async def remove(self, credential_id: str) -> bool:
        removed = await self.db.credentials.remove(credential_id)
        if removed:
            logger.info("Credential '%s' removed", credential_id)
        return removed


def _public(row: dict) -> dict:
    return {k: v for k, v in row.items() if k not in ("password", "api_key_hash")}
