from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from dotenv import load_dotenv

from app.routes import jobs, subscriptions
from core.config import AppConfig
from core.database import init_db

# Ensure .env values are loaded even if uvicorn is launched without `dotenv run`.
load_dotenv()


def build_meta(config: Optional[AppConfig]) -> Dict[str, Any]:
    config = config or AppConfig()
    proc = config.processor
    return {
        "tag_candidates": list(proc.tag_candidates),
        "employment_types": list(proc.employment_types),
        "salary_ranges": list(proc.salary_ranges),
        "role_categories": list(proc.role_categories),
        "language_options": list(proc.language_options),
        "channels": list(config.subscription.allowed_channels),
    }


def create_app(
    scheduler=None,
    store=None,
    subscription_service=None,
    config: Optional[AppConfig] = None,
    init_schema: bool = True,
) -> FastAPI:
    """
    Build the HTTP app. `store` defaults to the core.database module; a missing
    scheduler or subscription service turns the matching endpoint into a 503.
    """
    if store is None:
        import core.database as store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if init_schema:
            init_db()
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.scheduler = scheduler
    app.state.store = store
    app.state.subscriptions = subscription_service
    app.state.meta = build_meta(config)

    app.include_router(jobs.router)
    app.include_router(subscriptions.router)
    app.middleware("http")(add_security_headers)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("Content-Security-Policy", "default-src 'self'")
    return response
