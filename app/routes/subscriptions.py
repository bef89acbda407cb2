from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.subscriptions import SubscriptionError

log = logging.getLogger(__name__)

router = APIRouter()


class SubscriptionRequest(BaseModel):
    email: str = ""
    channel: str = ""
    tags: Optional[List[str]] = None


@router.post("/api/subscriptions")
async def create_subscription(request: Request):
    service = request.app.state.subscriptions
    if service is None:
        return JSONResponse({"error": "subscription disabled"}, status_code=503)

    try:
        payload = SubscriptionRequest(**(await request.json()))
    except Exception:
        return JSONResponse({"error": "invalid payload"}, status_code=400)

    try:
        await asyncio.to_thread(service.create, payload.email, payload.channel, payload.tags or [])
    except SubscriptionError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except Exception as e:
        log.exception("Subscription create failed", extra={"error": str(e)})
        return JSONResponse({"error": str(e)}, status_code=500)
    return JSONResponse({"status": "ok"}, status_code=201)
