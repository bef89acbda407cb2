"""
Low-level database helpers.

SQLite is the embedded default; a postgres:// or postgresql:// URL switches to
Postgres through psycopg. Callers always write `?` placeholders.
"""
from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Iterable, Optional

import psycopg
from psycopg.rows import dict_row

DEFAULT_DATABASE_URL = "sqlite:///jobs.db"

_database_url: Optional[str] = None


def set_database_url(url: Optional[str]) -> None:
    """Point every later get_conn() call at `url` (None falls back to env/default)."""
    global _database_url
    _database_url = (url or "").strip() or None


def resolve_database_url() -> str:
    return _database_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _dialect_for(url: str) -> str:
    if url.startswith("postgres://") or url.startswith("postgresql://"):
        return "postgres"
    return "sqlite"


def _sqlite_path(url: str) -> Path:
    if url.startswith("sqlite:///"):
        return Path(url[len("sqlite:///"):])
    if url.startswith("sqlite://"):
        return Path(url[len("sqlite://"):])
    return Path(url)


def _convert_qmarks(sql: str) -> str:
    if "?" not in sql:
        return sql
    return sql.replace("?", "%s")


class _CursorWrapper:
    def __init__(self, cursor, dialect: str):
        self._cursor = cursor
        self._dialect = dialect

    def execute(self, sql: str, params: Iterable | None = None):
        if self._dialect == "postgres":
            sql = _convert_qmarks(sql)
        if params is None:
            return self._cursor.execute(sql)
        return self._cursor.execute(sql, tuple(params))

    def executemany(self, sql: str, seq_of_params: Iterable):
        if self._dialect == "postgres":
            sql = _convert_qmarks(sql)
        return self._cursor.executemany(sql, [tuple(p) for p in seq_of_params])

    def fetchone(self):
        row = self._cursor.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self):
        return [dict(row) for row in self._cursor.fetchall()]

    def __iter__(self):
        return (dict(row) for row in self._cursor)

    @property
    def rowcount(self):
        return getattr(self._cursor, "rowcount", 0)

    @property
    def lastrowid(self):
        return getattr(self._cursor, "lastrowid", None)


class _ConnWrapper:
    def __init__(self, conn, dialect: str):
        self._conn = conn
        self.dialect = dialect

    def cursor(self):
        return _CursorWrapper(self._conn.cursor(), self.dialect)

    def commit(self):
        return self._conn.commit()

    def rollback(self):
        return self._conn.rollback()

    def close(self):
        return self._conn.close()

    def json_flag_clause(self, column: str) -> str:
        """
        SQL fragment (one `?` parameter: the key) that is true when the JSON
        object stored in `column` holds `true` under that key.
        """
        if self.dialect == "postgres":
            return f"(({column})::jsonb ->> ?) = 'true'"
        return f"json_extract({column}, ?) = 1"

    def json_key_param(self, key: str) -> str:
        if self.dialect == "postgres":
            return key
        escaped = key.replace("\\", "\\\\").replace('"', '\\"')
        return f'$."{escaped}"'

    @property
    def unbounded_limit(self) -> str:
        return "ALL" if self.dialect == "postgres" else "-1"


def get_conn():
    """
    Return a DB connection for the configured database URL.
    """
    url = resolve_database_url()
    dialect = _dialect_for(url)
    if dialect == "postgres":
        conn = psycopg.connect(url, row_factory=dict_row)
        return _ConnWrapper(conn, dialect)

    path = _sqlite_path(url)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30)
    conn.row_factory = sqlite3.Row
    return _ConnWrapper(conn, dialect)


__all__ = [
    "DEFAULT_DATABASE_URL",
    "set_database_url",
    "resolve_database_url",
    "get_conn",
]
