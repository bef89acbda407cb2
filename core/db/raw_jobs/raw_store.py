"""
Raw job storage helpers.

Every crawl result lands here first, keyed by (source, external_id). Re-crawls
refresh the volatile columns only; status, reason and llm_response belong to
the classifier and are never overwritten by an upsert.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from core.db.base import get_conn
from core.db.rows import dump_json, from_iso, load_json, load_json_map, to_iso, utc_now
from core.models import (
    RAW_STATUS_PENDING,
    RAW_STATUS_PROCESSED,
    RawJob,
    UpsertResult,
)

log = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class RawJobNotFoundError(LookupError):
    """Raised when a status update targets a raw job id that does not exist."""


def _row_to_raw_job(row: Dict[str, Any]) -> RawJob:
    return RawJob(
        id=row["id"],
        source=row["source"],
        external_id=row["external_id"],
        title=row.get("title") or "",
        summary=row.get("summary") or "",
        content=row.get("content") or "",
        url=row.get("url") or "",
        tags=load_json_map(row.get("tags")),
        raw_payload=load_json_map(row.get("raw_payload")),
        published_at=from_iso(row.get("published_at")),
        status=row.get("status") or RAW_STATUS_PENDING,
        reason=row.get("reason") or "",
        llm_response=load_json(row.get("llm_response")),
        created_at=from_iso(row.get("created_at")),
        updated_at=from_iso(row.get("updated_at")),
    )


def _existing_keys(cur, jobs: List[RawJob]) -> Set[Tuple[str, str]]:
    by_source: Dict[str, List[str]] = {}
    for job in jobs:
        by_source.setdefault(job.source, []).append(job.external_id)

    existing: Set[Tuple[str, str]] = set()
    for source, ids in by_source.items():
        unique_ids = list(dict.fromkeys(ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        cur.execute(
            f"SELECT external_id FROM raw_jobs WHERE source = ? AND external_id IN ({placeholders})",
            [source, *unique_ids],
        )
        for row in cur.fetchall():
            existing.add((source, row["external_id"]))
    return existing


def upsert_raw_jobs(jobs: List[RawJob]) -> UpsertResult:
    """
    Insert or refresh raw jobs.

    "New" is decided against the keys already stored before the write, so
    re-submitting the same batch reports created == 0.
    """
    result = UpsertResult()
    if not jobs:
        return result

    for job in jobs:
        if not job.status:
            job.status = RAW_STATUS_PENDING

    conn = get_conn()
    cur = conn.cursor()
    try:
        existing = _existing_keys(cur, jobs)
        for job in jobs:
            key = (job.source, job.external_id)
            if key not in existing:
                result.created += 1
                result.new_records.append(job)
                existing.add(key)

        now = to_iso(utc_now())
        cur.executemany(
            """
            INSERT INTO raw_jobs
              (source, external_id, title, summary, content, url, tags, raw_payload,
               published_at, status, reason, llm_response, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (source, external_id) DO UPDATE SET
              title = excluded.title,
              summary = excluded.summary,
              content = excluded.content,
              url = excluded.url,
              tags = excluded.tags,
              raw_payload = excluded.raw_payload,
              published_at = excluded.published_at,
              updated_at = excluded.updated_at
            """,
            [
                (
                    job.source,
                    job.external_id,
                    job.title,
                    job.summary,
                    job.content,
                    job.url,
                    dump_json(job.tags or {}),
                    dump_json(job.raw_payload or {}),
                    to_iso(job.published_at),
                    job.status,
                    job.reason,
                    dump_json(job.llm_response),
                    now,
                    now,
                )
                for job in jobs
            ],
        )
        conn.commit()
    finally:
        conn.close()

    log.info(
        "raw upsert",
        extra={"submitted": len(jobs), "inserted": result.created},
    )
    return result


def list_raw_jobs(status: str = RAW_STATUS_PENDING, limit: int = DEFAULT_LIST_LIMIT) -> List[RawJob]:
    """Return raw jobs with `status`, oldest first."""
    status = status or RAW_STATUS_PENDING
    if limit <= 0:
        limit = DEFAULT_LIST_LIMIT

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            SELECT *
            FROM raw_jobs
            WHERE status = ?
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (status, int(limit)),
        )
        rows = cur.fetchall()
    finally:
        conn.close()
    return [_row_to_raw_job(r) for r in rows]


def get_raw_job(raw_id: int) -> Optional[RawJob]:
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute("SELECT * FROM raw_jobs WHERE id = ?", (raw_id,))
        row = cur.fetchone()
    finally:
        conn.close()
    return _row_to_raw_job(row) if row else None


def update_raw_job_status(
    raw_id: int,
    status: str,
    reason: str = "",
    trace: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Move a raw job to `status` (processed when empty), recording the reason and,
    when given, the classifier trace.
    """
    status = status or RAW_STATUS_PROCESSED
    assignments = ["status = ?", "reason = ?", "updated_at = ?"]
    params: List[Any] = [status, reason or "", to_iso(utc_now())]
    if trace is not None:
        assignments.append("llm_response = ?")
        params.append(dump_json(trace))
    params.append(raw_id)

    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute(
            f"UPDATE raw_jobs SET {', '.join(assignments)} WHERE id = ?",
            params,
        )
        updated = cur.rowcount
        conn.commit()
    finally:
        conn.close()

    if not updated:
        raise RawJobNotFoundError(f"raw job {raw_id} not found")


__all__ = [
    "DEFAULT_LIST_LIMIT",
    "RawJobNotFoundError",
    "upsert_raw_jobs",
    "list_raw_jobs",
    "get_raw_job",
    "update_raw_job_status",
]
