"""
Subscription storage helpers (data-level only).

Validation lives in app/subscriptions.py; this module only reads and writes rows.
"""
from __future__ import annotations

from typing import Any, Dict, List

from core.db.base import get_conn
from core.db.rows import dump_json, from_iso, load_json_map, to_iso, utc_now
from core.models import Subscription


def _row_to_subscription(row: Dict[str, Any]) -> Subscription:
    return Subscription(
        id=row["id"],
        email=row["email"],
        channel=row.get("channel") or "",
        tags=load_json_map(row.get("tags")),
        created_at=from_iso(row.get("created_at")),
    )


def add_subscription(sub: Subscription) -> Subscription:
    """Insert a subscription and return it with id and created_at filled in."""
    conn = get_conn()
    cur = conn.cursor()
    created_at = utc_now()
    try:
        params = (sub.email, sub.channel, dump_json(sub.tags or {}), to_iso(created_at))
        if conn.dialect == "postgres":
            cur.execute(
                """
                INSERT INTO subscriptions (email, channel, tags, created_at)
                VALUES (?, ?, ?, ?)
                RETURNING id
                """,
                params,
            )
            sub_id = cur.fetchone()["id"]
        else:
            cur.execute(
                """
                INSERT INTO subscriptions (email, channel, tags, created_at)
                VALUES (?, ?, ?, ?)
                """,
                params,
            )
            sub_id = cur.lastrowid
        conn.commit()
    finally:
        conn.close()

    sub.id = sub_id
    sub.created_at = created_at
    return sub


def list_subscriptions() -> List[Subscription]:
    """Return every subscription, oldest first."""
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            SELECT id, email, channel, tags, created_at
            FROM subscriptions
            ORDER BY created_at ASC, id ASC
            """
        )
        rows = cur.fetchall()
    finally:
        conn.close()
    return [_row_to_subscription(r) for r in rows]


__all__ = [
    "add_subscription",
    "list_subscriptions",
]
