"""
Database package: connection helpers and schema setup.
"""
from core.db.base import get_conn, set_database_url, resolve_database_url
from core.db.schema import init_db

__all__ = [
    "get_conn",
    "set_database_url",
    "resolve_database_url",
    "init_db",
]
