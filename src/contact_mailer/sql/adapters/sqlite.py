# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import aiosqlite

from ...errors import StorageError
from .base import DbAdapter, DbSession

DEFAULT_BUSY_TIMEOUT = 5.0


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.Error as exc:
        raise StorageError(f"SQLite {action} failed: {exc}") from exc


def _row_to_dict(cursor: aiosqlite.Cursor, row: Any) -> dict[str, Any]:
    cols = [c[0] for c in cursor.description]
    return dict(zip(cols, row, strict=True))


class SqliteSession(DbSession):
    """Queries running on the connection held by an open SQLite transaction."""

    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        with _storage_errors("execute"):
            cursor = await self.conn.execute(query, params or {})
            return cursor.rowcount

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        with _storage_errors("query"):
            async with self.conn.execute(query, params or {}) as cursor:
                row = await cursor.fetchone()
                return _row_to_dict(cursor, row) if row is not None else None

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        with _storage_errors("query"):
            async with self.conn.execute(query, params or {}) as cursor:
                rows = await cursor.fetchall()
                return [_row_to_dict(cursor, row) for row in rows]

    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        columns = list(data.keys())
        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(f':{c}' for c in columns)})"
        )
        with _storage_errors("insert"):
            cursor = await self.conn.execute(query, data)
            return int(cursor.lastrowid)


class SqliteAdapter(DbAdapter):
    """SQLite async adapter. Opens a connection per operation or per transaction."""

    type_map = {
        "INTEGER": "INTEGER",
        "TEXT": "TEXT",
        "BOOLEAN": "INTEGER",
        "TIMESTAMP": "TIMESTAMP",
        "BLOB": "BLOB",
    }

    def __init__(self, db_path: str, busy_timeout: float = DEFAULT_BUSY_TIMEOUT):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite file.
            busy_timeout: Seconds a connection waits for another writer to
                release the database lock. Send transactions hold that lock
                across the network dispatch, so this bounds how long
                concurrent sends queue behind each other.
        """
        self.db_path = db_path or ":memory:"
        self.busy_timeout = busy_timeout

    def _open(self, **kwargs: Any) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path, timeout=self.busy_timeout, **kwargs)

    def pk_column(self, name: str) -> str:
        return f"{name} INTEGER PRIMARY KEY AUTOINCREMENT"

    async def connect(self) -> None:
        """SQLite connections are opened per-operation, this is a no-op."""
        pass

    async def close(self) -> None:
        """SQLite connections are closed per-operation, this is a no-op."""
        pass

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        with _storage_errors("execute"):
            async with self._open() as db:
                cursor = await db.execute(query, params or {})
                await db.commit()
                return cursor.rowcount

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        with _storage_errors("query"):
            async with self._open() as db:
                async with db.execute(query, params or {}) as cursor:
                    row = await cursor.fetchone()
                    if row is None:
                        return None
                    return _row_to_dict(cursor, row)

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        with _storage_errors("query"):
            async with self._open() as db:
                async with db.execute(query, params or {}) as cursor:
                    rows = await cursor.fetchall()
                    return [_row_to_dict(cursor, row) for row in rows]

    async def upsert(
        self,
        table: str,
        data: dict[str, Any],
        conflict_columns: list[str],
        update_extras: list[str] | None = None,
    ) -> int:
        """Insert or update using SQLite ON CONFLICT DO UPDATE."""
        columns = list(data.keys())
        placeholders = ", ".join(f":{c}" for c in columns)
        col_list = ", ".join(columns)
        conflict_cols = ", ".join(conflict_columns)
        update_parts = [f"{c} = excluded.{c}" for c in columns if c not in conflict_columns]
        if update_extras:
            update_parts.extend(update_extras)
        update_cols = ", ".join(update_parts)

        query = f"""
            INSERT INTO {table} ({col_list}) VALUES ({placeholders})
            ON CONFLICT ({conflict_cols}) DO UPDATE SET {update_cols}
        """
        return await self.execute(query, data)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqliteSession]:
        # isolation_level=None: transaction boundaries are issued explicitly
        async with self._open(isolation_level=None) as db:
            with _storage_errors("begin"):
                await db.execute("BEGIN IMMEDIATE")
            try:
                yield SqliteSession(db)
            except BaseException:
                with _storage_errors("rollback"):
                    await db.execute("ROLLBACK")
                raise
            with _storage_errors("commit"):
                await db.execute("COMMIT")
