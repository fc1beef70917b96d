# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Table base class with Columns-based schema (async version)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from .column import Columns

if TYPE_CHECKING:
    from .adapters.base import DbAdapter, DbSession
    from .sqldb import SqlDb


class Table:
    """Base class for async table managers.

    Subclasses define columns via configure() hook and implement
    domain-specific operations. Every query method accepts an optional
    ``tx`` session; without it the query runs on the adapter in its own
    short transaction.

    Attributes:
        name: Table name in database.
        db: SqlDb instance reference.
        columns: Column definitions.
    """

    name: str

    def __init__(self, db: SqlDb) -> None:
        self.db = db
        if not hasattr(self, "name") or not self.name:
            raise ValueError(f"{type(self).__name__} must define 'name'")

        self.columns = Columns()
        self.configure()

    def configure(self) -> None:
        """Override to define columns. Called during __init__."""
        pass

    def _conn(self, tx: DbSession | None) -> DbSession | DbAdapter:
        return tx if tx is not None else self.db.adapter

    @property
    def pkey(self) -> str:
        col = self.columns.primary_key
        if col is None:
            raise ValueError(f"Table {self.name} has no primary key defined")
        return col.name

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def create_table_sql(self) -> str:
        """Generate CREATE TABLE IF NOT EXISTS statement."""
        adapter = self.db.adapter
        col_defs = []
        for col in self.columns:
            if col.primary_key and col.type_ == "INTEGER":
                col_defs.append(adapter.pk_column(col.name))
            else:
                col_defs.append(col.to_sql(adapter.column_type(col.type_)))
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    " + ",\n    ".join(col_defs) + "\n)"

    async def create_schema(self) -> None:
        """Create table if not exists."""
        await self.db.adapter.execute(self.create_table_sql())

    # -------------------------------------------------------------------------
    # JSON Encoding/Decoding
    # -------------------------------------------------------------------------

    def _encode_json_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        result = dict(data)
        for col_name in self.columns.json_columns():
            if col_name in result and result[col_name] is not None:
                result[col_name] = json.dumps(result[col_name])
        return result

    def _decode_json_fields(self, row: dict[str, Any]) -> dict[str, Any]:
        result = dict(row)
        for col_name in self.columns.json_columns():
            if col_name in result and result[col_name] is not None:
                result[col_name] = json.loads(result[col_name])
        return result

    # -------------------------------------------------------------------------
    # CRUD Operations
    # -------------------------------------------------------------------------

    @staticmethod
    def _where_sql(where: dict[str, Any] | None) -> str:
        if not where:
            return ""
        return " WHERE " + " AND ".join(f"{k} = :{k}" for k in where)

    async def insert(self, data: dict[str, Any], tx: DbSession | None = None) -> int:
        """Insert a row and return the store-generated primary key."""
        encoded = self._encode_json_fields(data)
        return await self._conn(tx).insert(self.name, encoded, self.pkey)

    async def select(
        self,
        columns: list[str] | None = None,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        tx: DbSession | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows."""
        cols_sql = ", ".join(columns) if columns else "*"
        query = f"SELECT {cols_sql} FROM {self.name}{self._where_sql(where)}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        rows = await self._conn(tx).fetch_all(query, where)
        return [self._decode_json_fields(row) for row in rows]

    async def select_one(
        self,
        columns: list[str] | None = None,
        where: dict[str, Any] | None = None,
        tx: DbSession | None = None,
    ) -> dict[str, Any] | None:
        """Select single row."""
        cols_sql = ", ".join(columns) if columns else "*"
        query = f"SELECT {cols_sql} FROM {self.name}{self._where_sql(where)}"
        row = await self._conn(tx).fetch_one(query, where)
        return self._decode_json_fields(row) if row else None

    async def update(
        self,
        values: dict[str, Any],
        where: dict[str, Any],
        tx: DbSession | None = None,
    ) -> int:
        """Update rows matching ``where``, return affected row count."""
        encoded = self._encode_json_fields(values)
        set_sql = ", ".join(f"{k} = :set_{k}" for k in encoded)
        params = {f"set_{k}": v for k, v in encoded.items()}
        params.update(where)
        query = f"UPDATE {self.name} SET {set_sql}{self._where_sql(where)}"
        return await self._conn(tx).execute(query, params)

    async def delete(self, where: dict[str, Any], tx: DbSession | None = None) -> int:
        """Delete rows, return affected row count."""
        query = f"DELETE FROM {self.name}{self._where_sql(where)}"
        return await self._conn(tx).execute(query, where)

    async def count(self, where: dict[str, Any] | None = None, tx: DbSession | None = None) -> int:
        """Count rows."""
        query = f"SELECT COUNT(*) AS cnt FROM {self.name}{self._where_sql(where)}"
        row = await self._conn(tx).fetch_one(query, where)
        return int(row["cnt"]) if row else 0

    async def upsert(
        self,
        data: dict[str, Any],
        conflict_columns: list[str],
        update_extras: list[str] | None = None,
    ) -> int:
        """Insert or update on conflict."""
        encoded = self._encode_json_fields(data)
        return await self.db.adapter.upsert(self.name, encoded, conflict_columns, update_extras)


__all__ = ["Table"]
