# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Column definitions used by Table.configure()."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

Integer = "INTEGER"
String = "TEXT"
Timestamp = "TIMESTAMP"
Blob = "BLOB"

_SQL_KEYWORD_DEFAULTS = {"CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME", "NULL"}


class Column:
    """A single column declaration.

    Attributes:
        name: Column name.
        type_: Generic SQL type (Integer, String, Timestamp, Blob).
        primary_key: Column is the table primary key. An Integer primary
            key becomes an autoincrement key on every backend.
        nullable: False adds NOT NULL.
        default: SQL default. Keywords like CURRENT_TIMESTAMP are emitted
            as-is, strings are quoted.
        json_encoded: Value is stored as JSON text and decoded on read.
    """

    def __init__(
        self,
        name: str,
        type_: str,
        *,
        primary_key: bool = False,
        nullable: bool = True,
        default: Any = None,
        json_encoded: bool = False,
    ):
        self.name = name
        self.type_ = type_
        self.primary_key = primary_key
        self.nullable = nullable
        self.default = default
        self.json_encoded = json_encoded

    def _default_sql(self) -> str:
        if isinstance(self.default, str) and self.default.upper() not in _SQL_KEYWORD_DEFAULTS:
            escaped = self.default.replace("'", "''")
            return f"'{escaped}'"
        return str(self.default)

    def to_sql(self, sql_type: str | None = None) -> str:
        """Render the column definition for CREATE/ALTER TABLE."""
        parts = [self.name, sql_type or self.type_]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        elif not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self._default_sql()}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"Column({self.name!r}, {self.type_!r})"


class Columns:
    """Ordered collection of columns for one table."""

    def __init__(self) -> None:
        self._columns: dict[str, Column] = {}

    def column(self, name: str, type_: str, **kwargs: Any) -> Column:
        col = Column(name, type_, **kwargs)
        self._columns[name] = col
        return col

    def get(self, name: str) -> Column | None:
        return self._columns.get(name)

    def values(self) -> list[Column]:
        return list(self._columns.values())

    def names(self) -> list[str]:
        return list(self._columns)

    def json_columns(self) -> list[str]:
        return [c.name for c in self._columns.values() if c.json_encoded]

    @property
    def primary_key(self) -> Column | None:
        for col in self._columns.values():
            if col.primary_key:
                return col
        return None

    def __contains__(self, name: object) -> bool:
        return name in self._columns

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns.values())

    def __len__(self) -> int:
        return len(self._columns)


__all__ = ["Blob", "Column", "Columns", "Integer", "String", "Timestamp"]
