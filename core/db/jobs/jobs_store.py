"""
Final job storage helpers.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.db.base import get_conn
from core.db.rows import dump_json, from_iso, load_json_map, to_iso, utc_now
from core.models import Job, UpsertResult

log = logging.getLogger(__name__)

# Columns replaced when an existing id is upserted again; id and created_at stay.
_UPDATE_COLUMNS = [
    "title",
    "summary",
    "published_at",
    "source",
    "url",
    "tags",
    "raw_attributes",
    "normalized_tags",
    "skill_tags",
    "employment_type",
    "salary_range",
    "role_category",
    "language_requirement",
    "score",
    "verdict",
    "updated_at",
]


def _row_to_job(row: Dict[str, Any]) -> Job:
    return Job(
        id=row["id"],
        title=row.get("title") or "",
        summary=row.get("summary") or "",
        published_at=from_iso(row.get("published_at")),
        source=row.get("source") or "",
        url=row.get("url") or "",
        tags=load_json_map(row.get("tags")),
        raw_attributes=load_json_map(row.get("raw_attributes")),
        normalized_tags=load_json_map(row.get("normalized_tags")),
        skill_tags=load_json_map(row.get("skill_tags")),
        employment_type=row.get("employment_type") or "",
        salary_range=row.get("salary_range") or "",
        role_category=row.get("role_category") or "",
        language_requirement=row.get("language_requirement") or "",
        score=int(row.get("score") or 0),
        verdict=row.get("verdict") or "",
        created_at=from_iso(row.get("created_at")),
        updated_at=from_iso(row.get("updated_at")),
    )


def _clean_tags(tags: Optional[Sequence[str]]) -> List[str]:
    if not tags:
        return []
    return [t for t in dict.fromkeys(t.strip() for t in tags) if t]


def _tag_filter(conn, tags: Optional[Sequence[str]]) -> Tuple[str, List[Any]]:
    """WHERE fragment requiring every tag to be true in normalized_tags."""
    clauses: List[str] = []
    params: List[Any] = []
    for tag in _clean_tags(tags):
        clauses.append(conn.json_flag_clause("normalized_tags"))
        params.append(conn.json_key_param(tag))
    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


def upsert_jobs(jobs: List[Job]) -> UpsertResult:
    """
    Insert or update jobs keyed by id.
    Returns how many ids were unseen before this call, and those jobs.
    """
    result = UpsertResult()
    if not jobs:
        return result

    conn = get_conn()
    cur = conn.cursor()
    try:
        ids = list(dict.fromkeys(job.id for job in jobs))
        placeholders = ", ".join("?" for _ in ids)
        cur.execute(f"SELECT id FROM jobs WHERE id IN ({placeholders})", ids)
        existing = {row["id"] for row in cur.fetchall()}

        for job in jobs:
            if job.id not in existing:
                result.created += 1
                result.new_records.append(job)
                existing.add(job.id)

        now = to_iso(utc_now())
        updates = ",\n              ".join(f"{col} = excluded.{col}" for col in _UPDATE_COLUMNS)
        cur.executemany(
            f"""
            INSERT INTO jobs
              (id, title, summary, published_at, source, url, tags, raw_attributes,
               normalized_tags, skill_tags, employment_type, salary_range, role_category,
               language_requirement, score, verdict, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
              {updates}
            """,
            [
                (
                    job.id,
                    job.title,
                    job.summary,
                    to_iso(job.published_at),
                    job.source,
                    job.url,
                    dump_json(job.tags or {}),
                    dump_json(job.raw_attributes or {}),
                    dump_json(job.normalized_tags or {}),
                    dump_json(job.skill_tags or {}),
                    job.employment_type,
                    job.salary_range,
                    job.role_category,
                    job.language_requirement,
                    int(job.score),
                    job.verdict,
                    now,
                    now,
                )
                for job in jobs
            ],
        )
        conn.commit()
    finally:
        conn.close()

    log.info("job upsert", extra={"submitted": len(jobs), "inserted": result.created})
    return result


def list_jobs(
    tags: Optional[Sequence[str]] = None,
    limit: int = 0,
    offset: int = 0,
) -> List[Job]:
    """Return jobs newest-published first; limit <= 0 means no limit."""
    offset = max(int(offset or 0), 0)

    conn = get_conn()
    cur = conn.cursor()
    try:
        where, params = _tag_filter(conn, tags)
        sql = f"SELECT * FROM jobs{where} ORDER BY published_at DESC, id ASC"
        if limit and limit > 0:
            sql += " LIMIT ?"
            params.append(int(limit))
        elif offset:
            sql += f" LIMIT {conn.unbounded_limit}"
        if offset:
            sql += " OFFSET ?"
            params.append(offset)
        cur.execute(sql, params)
        rows = cur.fetchall()
    finally:
        conn.close()
    return [_row_to_job(r) for r in rows]


def list_jobs_page(
    tags: Optional[Sequence[str]] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Job], bool]:
    """Return one page of jobs plus a has-more flag (asks the store for one extra row)."""
    jobs = list_jobs(tags=tags, limit=limit + 1, offset=offset)
    has_more = len(jobs) > limit
    return jobs[:limit], has_more


def count_jobs(tags: Optional[Sequence[str]] = None) -> int:
    conn = get_conn()
    cur = conn.cursor()
    try:
        where, params = _tag_filter(conn, tags)
        cur.execute(f"SELECT COUNT(*) AS count FROM jobs{where}", params)
        row = cur.fetchone()
    finally:
        conn.close()
    return int(row["count"]) if row else 0


def get_job(job_id: str) -> Optional[Job]:
    conn = get_conn()
    cur = conn.cursor()
    try:
        cur.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
        row = cur.fetchone()
    finally:
        conn.close()
    return _row_to_job(row) if row else None


__all__ = [
    "upsert_jobs",
    "list_jobs",
    "list_jobs_page",
    "count_jobs",
    "get_job",
]
