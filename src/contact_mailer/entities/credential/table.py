# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Credentials table manager for per-tenant channel configurations."""

from __future__ import annotations

import hashlib
from typing import Any

from ...sql import DbSession, Integer, String, Table, Timestamp


def hash_api_key(raw_key: str) -> str:
    """Return the hex SHA-256 digest stored in place of a raw API key."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


class CredentialsTable(Table):
    """Credentials table: connection and secret bundles for one channel.

    Schema: id (client supplied), name, type (email/sms/whatsapp), provider
    (smtp/zoho), api_key_hash, host, port, secure, username, password,
    timestamps.
    """

    name = "credentials"

    def configure(self) -> None:
        c = self.columns
        c.column("id", String, primary_key=True)
        c.column("name", String, nullable=False)
        c.column("type", String, nullable=False)
        c.column("provider", String, default="smtp")
        c.column("api_key_hash", String)
        c.column("host", String)
        c.column("port", Integer)
        c.column("secure", Integer)  # NULL means undefined
        c.column("username", String)
        c.column("password", String)
        c.column("created_at", Timestamp, default="CURRENT_TIMESTAMP")
        c.column("updated_at", Timestamp, default="CURRENT_TIMESTAMP")

    async def get(self, credential_id: str, tx: DbSession | None = None) -> dict[str, Any] | None:
        return await self.select_one(where={"id": credential_id}, tx=tx)

    async def list_by_type(self, type_: str) -> list[dict[str, Any]]:
        """Return credentials of one channel type, newest first."""
        return await self.select(where={"type": type_}, order_by="created_at DESC, id")

    async def list_all(self) -> list[dict[str, Any]]:
        return await self.select(order_by="created_at DESC, id")

    async def add(self, cred: dict[str, Any]) -> None:
        """Insert or update a credential.

        A raw ``api_key`` in ``cred`` is hashed before storage and never
        persisted in clear.
        """
        secure = cred.get("secure")
        record = {
            "id": cred["id"],
            "name": cred["name"],
            "type": cred.get("type", "email"),
            "provider": cred.get("provider") or "smtp",
            "host": cred.get("host"),
            "port": int(cred["port"]) if cred.get("port") is not None else None,
            "secure": None if secure is None else (1 if secure else 0),
            "username": cred.get("username"),
            "password": cred.get("password"),
        }
        if cred.get("api_key"):
            record["api_key_hash"] = hash_api_key(cred["api_key"])
        await self.upsert(record, ["id"], update_extras=["updated_at = CURRENT_TIMESTAMP"])

    async def remove(self, credential_id: str) -> bool:
        return await self.delete({"id": credential_id}) > 0
