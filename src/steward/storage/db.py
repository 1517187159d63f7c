"""
Steward Database Connection Abstraction

Unified interface over SQLite and PostgreSQL. The backend is detected
from the connection URL:
- ``postgresql://`` or ``postgres://`` → psycopg (PostgreSQL)
- anything else (file path, ``:memory:``) → sqlite3

Usage::

    from steward.storage.db import connect

    conn = connect(os.environ.get("STEWARD_DATABASE_URL", "steward.db"))
    conn.execute("SELECT * FROM digests WHERE tenant_id = ?", ("t-1",))
    rows = conn.fetchall()

The ``?`` placeholder is converted to ``%s`` for PostgreSQL. DDL in this
package sticks to types both backends accept (TEXT, INTEGER, REAL).
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from typing import Any


class DbConnection:
    """Unified database connection wrapper. Not thread-safe on its own."""

    def __init__(self, conn: Any, *, is_postgres: bool = False) -> None:
        self._conn = conn
        self._cursor: Any = None
        self.is_postgres = is_postgres

    def _convert_sql(self, sql: str) -> str:
        if not self.is_postgres:
            return sql
        return sql.replace("?", "%s")

    def execute(self, sql: str, params: Sequence[Any] = ()) -> DbConnection:
        """Execute a single statement. Returns self for chaining."""
        sql = self._convert_sql(sql)
        if self.is_postgres:
            self._cursor = self._conn.cursor()
            self._cursor.execute(sql, tuple(params) or None)
        else:
            self._cursor = self._conn.execute(sql, tuple(params))
        return self

    def executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        sql = self._convert_sql(sql)
        if self.is_postgres:
            with self._conn.cursor() as cur:
                cur.executemany(sql, [tuple(r) for r in rows])
        else:
            self._conn.executemany(sql, [tuple(r) for r in rows])

    def executescript(self, sql: str) -> None:
        """Execute multiple statements separated by semicolons."""
        if self.is_postgres:
            cur = self._conn.cursor()
            for stmt in sql.split(";"):
                stmt = stmt.strip()
                if stmt:
                    cur.execute(stmt)
            self._conn.commit()
        else:
            self._conn.executescript(sql)

    @property
    def rowcount(self) -> int:
        if self._cursor is None:
            return 0
        return self._cursor.rowcount

    def fetchone(self) -> dict[str, Any] | None:
        if self._cursor is None:
            return None
        row = self._cursor.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self) -> list[dict[str, Any]]:
        if self._cursor is None:
            return []
        return [dict(r) for r in self._cursor.fetchall()]

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    def upsert(
        self,
        table: str,
        conflict: Sequence[str],
        columns: Sequence[str],
        values: Sequence[Any],
    ) -> None:
        """Insert a row, or fully replace the non-key columns of the existing one.

        ``ON CONFLICT ... DO UPDATE`` is understood by PostgreSQL and by
        SQLite >= 3.24, so one statement serves both backends.
        """
        col_list = ", ".join(columns)
        placeholders = ", ".join(["?"] * len(columns))
        non_key = [c for c in columns if c not in conflict]
        update_clause = ", ".join(f"{c} = excluded.{c}" for c in non_key)
        sql = (
            f"INSERT INTO {table} ({col_list}) VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(conflict)}) DO UPDATE SET {update_clause}"
        )
        self.execute(sql, values)


def connect(db_url: str) -> DbConnection:
    """Create a database connection from a URL or path.

    Args:
        db_url: PostgreSQL URL (``postgresql://...`` or ``postgres://...``)
                or SQLite path (file path or ``:memory:``).
    """
    if db_url.startswith(("postgresql://", "postgres://")):
        import psycopg
        from psycopg.rows import dict_row

        conn = psycopg.connect(db_url, row_factory=dict_row, autocommit=False)
        return DbConnection(conn, is_postgres=True)

    conn = sqlite3.connect(db_url, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return DbConnection(conn, is_postgres=False)
