"""
Schema helpers for SQLite and Postgres.
"""
from __future__ import annotations

from core.db.base import get_conn


def _id_column(dialect: str) -> str:
    if dialect == "postgres":
        return "id SERIAL PRIMARY KEY"
    return "id INTEGER PRIMARY KEY AUTOINCREMENT"


def init_db() -> None:
    """Create the raw_jobs, jobs and subscriptions tables if they don't exist."""
    conn = get_conn()
    cur = conn.cursor()

    cur.execute(
        f"""
        CREATE TABLE IF NOT EXISTS raw_jobs(
            {_id_column(conn.dialect)},
            source TEXT NOT NULL,
            external_id TEXT NOT NULL,
            title TEXT,
            summary TEXT,
            content TEXT,
            url TEXT,
            tags TEXT,
            raw_payload TEXT,
            published_at TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            reason TEXT,
            llm_response TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(source, external_id)
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_raw_jobs_status ON raw_jobs(status)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs(
            id TEXT PRIMARY KEY,
            title TEXT,
            summary TEXT,
            published_at TEXT,
            source TEXT,
            url TEXT,
            tags TEXT,
            raw_attributes TEXT,
            normalized_tags TEXT,
            skill_tags TEXT,
            employment_type TEXT,
            salary_range TEXT,
            role_category TEXT,
            language_requirement TEXT,
            score INTEGER NOT NULL DEFAULT 0,
            verdict TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_jobs_published_at ON jobs(published_at)"
    )
    cur.execute(
        f"""
        CREATE TABLE IF NOT EXISTS subscriptions(
            {_id_column(conn.dialect)},
            email TEXT NOT NULL,
            channel TEXT NOT NULL DEFAULT 'email',
            tags TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    conn.commit()
    conn.close()


__all__ = [
    "init_db",
]
