"""
Facade that re-exports all DB helpers from their domain modules.

The scheduler, the notifier and the HTTP routes import from here so they can be
handed a stub namespace with the same attribute names in tests.
"""
from core.db.base import get_conn, set_database_url, resolve_database_url
from core.db.schema import init_db

from core.db.raw_jobs import (
    RawJobNotFoundError,
    upsert_raw_jobs,
    list_raw_jobs,
    get_raw_job,
    update_raw_job_status,
)

from core.db.jobs import (
    upsert_jobs,
    list_jobs,
    list_jobs_page,
    count_jobs,
    get_job,
)

from core.db.subscriptions import (
    add_subscription,
    list_subscriptions,
)

__all__ = [
    # base
    "get_conn",
    "set_database_url",
    "resolve_database_url",
    "init_db",
    # raw jobs
    "RawJobNotFoundError",
    "upsert_raw_jobs",
    "list_raw_jobs",
    "get_raw_job",
    "update_raw_job_status",
    # jobs
    "upsert_jobs",
    "list_jobs",
    "list_jobs_page",
    "count_jobs",
    "get_job",
    # subscriptions
    "add_subscription",
    "list_subscriptions",
]
