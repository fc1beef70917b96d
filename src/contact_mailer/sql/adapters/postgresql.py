# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""PostgreSQL async adapter using psycopg3 with connection pooling."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from ...errors import StorageError
from .base import DbAdapter, DbSession


def _convert_placeholders(query: str) -> str:
    """Convert :name placeholders to %(name)s for psycopg.

    Uses negative lookbehind to preserve PostgreSQL :: cast operators.
    """
    return re.sub(r"(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)", r"%(\1)s", query)


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    import psycopg

    try:
        yield
    except psycopg.Error as exc:
        raise StorageError(f"PostgreSQL {action} failed: {exc}") from exc


class PostgresSession(DbSession):
    """Queries running on the pooled connection held by an open transaction."""

    def __init__(self, conn: Any):
        self.conn = conn

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        with _storage_errors("execute"):
            async with self.conn.cursor() as cur:
                await cur.execute(_convert_placeholders(query), params or {})
                return cur.rowcount

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        from psycopg.rows import dict_row

        with _storage_errors("query"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(_convert_placeholders(query), params or {})
                return await cur.fetchone()

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        from psycopg.rows import dict_row

        with _storage_errors("query"):
            async with self.conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(_convert_placeholders(query), params or {})
                return await cur.fetchall()

    async def insert(self, table: str, data: dict[str, Any], pk: str = "id") -> int:
        columns = list(data.keys())
        col_list = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join(f"%({c})s" for c in columns)
        query = f'INSERT INTO {table} ({col_list}) VALUES ({placeholders}) RETURNING "{pk}"'
        with _storage_errors("insert"):
            async with self.conn.cursor() as cur:
                await cur.execute(query, data)
                row = await cur.fetchone()
                return int(row[0])


class PostgresAdapter(DbAdapter):
    """PostgreSQL async adapter using psycopg3 with connection pooling.

    Each transaction checks out one connection from the pool and holds it
    exclusively until commit or rollback.
    """

    type_map = {
        "INTEGER": "INTEGER",
        "TEXT": "TEXT",
        "BOOLEAN": "BOOLEAN",
        "TIMESTAMP": "TIMESTAMP",
        "BLOB": "BYTEA",
    }

    def __init__(self, dsn: str, pool_size: int = 10):
        self.dsn = dsn
        self.pool_size = pool_size
        self._pool: Any = None

        # Verify psycopg is available at init time
        try:
            import psycopg  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "PostgreSQL support requires psycopg. "
                "Install with: pip install contact-mailer[postgresql]"
            ) from e

    def pk_column(self, name: str) -> str:
        return f'"{name}" SERIAL PRIMARY KEY'

    async def connect(self) -> None:
        """Establish connection pool."""
        from psycopg_pool import AsyncConnectionPool

        self._pool = AsyncConnectionPool(
            self.dsn,
            min_size=1,
            max_size=self.pool_size,
            open=False,
        )
        await self._pool.open()

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        with _storage_errors("execute"):
            async with self._pool.connection() as conn, conn.cursor() as cur:
                await cur.execute(_convert_placeholders(query), params or {})
                await conn.commit()
                return cur.rowcount

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        from psycopg.rows import dict_row

        with _storage_errors("query"):
            async with self._pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(_convert_placeholders(query), params or {})
                    return await cur.fetchone()

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        from psycopg.rows import dict_row

        with _storage_errors("query"):
            async with self._pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(_convert_placeholders(query), params or {})
                    return await cur.fetchall()

    def _sql_name(self, name: str) -> str:
        """Quote identifier for PostgreSQL (handles reserved words like 'user')."""
        return f'"{name}"'

    async def upsert(
        self,
        table: str,
        data: dict[str, Any],
        conflict_columns: list[str],
        update_extras: list[str] | None = None,
    ) -> int:
        """Insert or update using PostgreSQL ON CONFLICT DO UPDATE."""
        columns = list(data.keys())
        placeholders = ", ".join(f"%({c})s" for c in columns)
        col_list = ", ".join(self._sql_name(c) for c in columns)
        conflict_cols = ", ".join(self._sql_name(c) for c in conflict_columns)
        update_parts = [
            f"{self._sql_name(c)} = EXCLUDED.{self._sql_name(c)}"
            for c in columns
            if c not in conflict_columns
        ]
        if update_extras:
            update_parts.extend(update_extras)
        update_cols = ", ".join(update_parts)

        query = f"""
            INSERT INTO {table} ({col_list}) VALUES ({placeholders})
            ON CONFLICT ({conflict_cols}) DO UPDATE SET {update_cols}
        """
        with _storage_errors("upsert"):
            async with self._pool.connection() as conn, conn.cursor() as cur:
                await cur.execute(query, data)
                await conn.commit()
                return cur.rowcount

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresSession]:
        with _storage_errors("transaction"):
            async with self._pool.connection() as conn:
                async with conn.transaction():
                    yield PostgresSession(conn)
