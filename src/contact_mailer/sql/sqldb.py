# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Database manager holding the adapter and the registered tables."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager

from .adapters import DbAdapter, DbSession, get_adapter
from .table import Table


class SqlDb:
    """Adapter plus a registry of Table managers.

    Example:
        db = SqlDb("/data/mailer.db")
        db.add_table(CredentialsTable)
        await db.connect()
        await db.check_structure()
    """

    def __init__(self, connection_string: str, *, busy_timeout: float | None = None):
        self.connection_string = connection_string
        self.adapter: DbAdapter = get_adapter(connection_string, busy_timeout=busy_timeout)
        self.tables: dict[str, Table] = {}

    def add_table(self, table_class: type[Table]) -> Table:
        """Instantiate and register a table manager under its ``name``."""
        table = table_class(self)
        self.tables[table.name] = table
        return table

    def table(self, name: str) -> Table:
        if name not in self.tables:
            raise KeyError(f"Table '{name}' is not registered")
        return self.tables[name]

    async def connect(self) -> None:
        await self.adapter.connect()

    async def close(self) -> None:
        await self.adapter.close()

    async def check_structure(self) -> None:
        """Create every registered table that does not exist yet."""
        for table in self.tables.values():
            await table.create_schema()

    def transaction(self) -> AbstractAsyncContextManager[DbSession]:
        return self.adapter.transaction()
