"""
Data models shared by the crawler, the stores, the classifier and the notifier.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

RAW_STATUS_PENDING = "pending"
RAW_STATUS_PROCESSED = "processed"
RAW_STATUS_REJECTED = "rejected"

RAW_STATUSES = (RAW_STATUS_PENDING, RAW_STATUS_PROCESSED, RAW_STATUS_REJECTED)


@dataclass
class RawJob:
    """
    An unprocessed crawl result.

    (source, external_id) is the natural key. `id` is assigned by the store and
    is None until the record has been read back from it.
    """

    source: str
    external_id: str
    title: str = ""
    summary: str = ""
    content: str = ""
    url: str = ""
    tags: Dict[str, Any] = field(default_factory=dict)
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    published_at: Optional[datetime] = None
    status: str = RAW_STATUS_PENDING
    reason: str = ""
    llm_response: Optional[Dict[str, Any]] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Job:
    """An accepted, classified posting."""

    id: str
    title: str = ""
    summary: str = ""
    published_at: Optional[datetime] = None
    source: str = ""
    url: str = ""
    tags: Dict[str, Any] = field(default_factory=dict)
    raw_attributes: Dict[str, Any] = field(default_factory=dict)
    normalized_tags: Dict[str, Any] = field(default_factory=dict)
    skill_tags: Dict[str, Any] = field(default_factory=dict)
    employment_type: str = ""
    salary_range: str = ""
    role_category: str = ""
    language_requirement: str = ""
    score: int = 0
    verdict: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Subscription:
    email: str
    channel: str = "email"
    tags: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class UpsertResult:
    """Outcome of a batch upsert: how many keys were unseen, and those records."""

    created: int = 0
    new_records: List[Any] = field(default_factory=list)


def is_truthy(value: Any) -> bool:
    """
    Tag flag check tolerant of how the flag was encoded: booleans as-is, the
    string "true" (any case), non-zero numbers, and any other non-None value.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    if isinstance(value, (int, float)):
        return value != 0
    return value is not None


__all__ = [
    "RAW_STATUS_PENDING",
    "RAW_STATUS_PROCESSED",
    "RAW_STATUS_REJECTED",
    "RAW_STATUSES",
    "RawJob",
    "Job",
    "Subscription",
    "UpsertResult",
    "is_truthy",
]
