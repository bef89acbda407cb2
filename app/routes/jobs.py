"""
Job listing, manual refresh and filter metadata.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from core.models import Job

log = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def _positive_int(value: Optional[str], default: int) -> int:
    try:
        parsed = int(value) if value is not None else 0
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def collect_tags(values: List[str]) -> List[str]:
    """Flatten repeated and comma-separated tag parameters, keeping first-seen order."""
    tags: List[str] = []
    for raw in values:
        for part in raw.split(","):
            part = part.strip()
            if part and part not in tags:
                tags.append(part)
    return tags


def job_to_dict(job: Job) -> Dict[str, Any]:
    return jsonable_encoder(asdict(job))


@router.get("/api/jobs")
def list_jobs(
    request: Request,
    limit: Optional[str] = None,
    page: Optional[str] = None,
    tag: List[str] = Query(default=[]),
    tags: List[str] = Query(default=[]),
):
    store = request.app.state.store
    limit_value = min(_positive_int(limit, DEFAULT_LIMIT), MAX_LIMIT)
    page_value = _positive_int(page, 1)
    offset = (page_value - 1) * limit_value
    wanted = collect_tags(tag + tags)

    try:
        jobs, has_more = store.list_jobs_page(tags=wanted, limit=limit_value, offset=offset)
        total = store.count_jobs(tags=wanted)
    except Exception as e:
        log.exception("Job listing failed", extra={"error": str(e)})
        return JSONResponse({"error": str(e)}, status_code=500)

    headers = {
        "X-Page": str(page_value),
        "X-Limit": str(limit_value),
        "X-Has-More": "true" if has_more else "false",
        "X-Total": str(total),
    }
    return JSONResponse([job_to_dict(j) for j in jobs], headers=headers)


@router.post("/api/refresh")
async def refresh(request: Request):
    scheduler = request.app.state.scheduler
    if scheduler is None:
        return JSONResponse({"error": "scheduler disabled"}, status_code=503)
    try:
        created = await scheduler.run_once()
    except Exception as e:
        log.error("Manual refresh failed", extra={"error": str(e)})
        return JSONResponse({"error": str(e)}, status_code=500)
    return {"created": created}


@router.get("/api/meta")
def meta(request: Request):
    return request.app.state.meta
