"""
Final job storage re-exports.
"""
from core.db.jobs.jobs_store import (
    upsert_jobs,
    list_jobs,
    list_jobs_page,
    count_jobs,
    get_job,
)

__all__ = [
    "upsert_jobs",
    "list_jobs",
    "list_jobs_page",
    "count_jobs",
    "get_job",
]
