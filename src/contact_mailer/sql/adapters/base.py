# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base adapter classes for async database backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any


class DbSession(ABC):
    """Queries bound to one connection inside an open transaction.

    All queries use :name placeholders (supported by both SQLite and PostgreSQL).
    """

    @abstractmethod
    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute query, return affected row count."""
        ...

    @abstractmethod
    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        ...

    @abstractmethod
    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        ...

    @abstractmethod
    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        """Insert one row and return the primary key generated by the store."""
        ...


class DbAdapter(ABC):
    """Abstract base class for async database adapters.

    Plain ``execute``/``fetch_*`` calls run in their own short transaction.
    Multi-statement units of work go through :meth:`transaction`.
    """

    type_map: dict[str, str] = {}

    def column_type(self, type_: str) -> str:
        """Return the dialect specific SQL type for a generic column type."""
        return self.type_map.get(type_, type_)

    @abstractmethod
    def pk_column(self, name: str) -> str:
        """Return SQL definition for an autoincrement primary key column."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Establish database connection."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close database connection."""
        ...

    @abstractmethod
    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute query, return affected row count."""
        ...

    @abstractmethod
    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        ...

    @abstractmethod
    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        ...

    @abstractmethod
    async def upsert(
        self,
        table: str,
        data: dict[str, Any],
        conflict_columns: list[str],
        update_extras: list[str] | None = None,
    ) -> int:
        """Insert or update row on conflict.

        Args:
            table: Table name.
            data: Column-value pairs to insert/update.
            conflict_columns: Columns that define uniqueness (typically PK).
            update_extras: Extra SQL expressions for UPDATE (e.g., "updated_at = CURRENT_TIMESTAMP").

        Returns:
            Affected row count.
        """
        ...

    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        """Insert one row in its own transaction, return the generated primary key."""
        async with self.transaction() as tx:
            return await tx.insert(table, data, pk)

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[DbSession]:
        """Open a transaction on one exclusive connection.

        Commits when the block exits normally and rolls back when it raises.

        Usage:
            async with adapter.transaction() as tx:
                msg_id = await tx.insert("outgoing_messages", {...})
                await tx.execute("UPDATE ...", {...})
        """
        ...
