"""
Raw job storage re-exports.
"""
from core.db.raw_jobs.raw_store import (
    RawJobNotFoundError,
    upsert_raw_jobs,
    list_raw_jobs,
    get_raw_job,
    update_raw_job_status,
)

__all__ = [
    "RawJobNotFoundError",
    "upsert_raw_jobs",
    "list_raw_jobs",
    "get_raw_job",
    "update_raw_job_status",
]
