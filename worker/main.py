import argparse
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import uvicorn
from dotenv import load_dotenv

import core.database as database
from app.api import create_app
from app.subscriptions import SubscriptionService
from core.config import AppConfig, load_config
from worker.completion import DeepseekClient
from worker.crawler import EleduckCrawler
from worker.notifier import EmailNotifier, LogNotifier, SubscriptionNotifier
from worker.processor import Processor
from worker.scheduler import Scheduler

# Load `.env` for local/dev runs.
load_dotenv()

DEFAULT_SHUTDOWN_TIMEOUT = 5.0
DEFAULT_ADDR = ":8080"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("worker")


@dataclass
class AppDeps:
    scheduler: Scheduler
    crawler: EleduckCrawler
    processor: Processor
    notifier: Any
    store: Any


def select_notifier(config: AppConfig, store=database):
    """Pick the notifier from `notifier.driver`; None disables notifications."""
    driver = (config.notifier.driver or "").strip().lower()
    if driver in ("", "email"):
        email = config.email
        if not email.host or not email.sender:
            log.warning("Email config incomplete, notifications disabled")
            return None
        fallback = EmailNotifier(email) if email.to else None
        return SubscriptionNotifier(store, email, fallback=fallback)
    if driver == "log":
        return LogNotifier()
    if driver in ("none", "off", "disabled"):
        return None
    log.warning("Unknown notifier driver, notifications disabled", extra={"driver": driver})
    return None


def build_app(config: AppConfig) -> AppDeps:
    database.set_database_url(config.database.url)

    crawler = EleduckCrawler(config.fetcher.base_url, config.fetcher)
    llm = DeepseekClient(config.processor.deepseek)
    processor = Processor(config.processor, llm)
    notifier = select_notifier(config, database)
    scheduler = Scheduler(crawler, database, processor, notifier, config.scheduler)
    return AppDeps(scheduler=scheduler, crawler=crawler, processor=processor, notifier=notifier, store=database)


def parse_addr(addr: Optional[str]) -> Tuple[str, int]:
    """Split "host:port" (host optional, ":8080" style) into uvicorn's host and port."""
    addr = (addr or DEFAULT_ADDR).strip()
    host, _, port = addr.rpartition(":")
    if not port.isdecimal():
        raise ValueError(f"invalid server addr {addr!r}")
    return host or "0.0.0.0", int(port)


async def run_server(server, scheduler, shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
    """
    Run the HTTP server and the scheduler side by side. When either one stops,
    the other is stopped too: the scheduler is cancelled (a running cycle still
    finishes) and the server gets `shutdown_timeout` seconds to close.
    A scheduler failure is re-raised once both are down.
    """
    if server is None:
        raise ValueError("run server: http server is None")
    if scheduler is None:
        raise ValueError("run server: scheduler is None")
    if shutdown_timeout <= 0:
        shutdown_timeout = DEFAULT_SHUTDOWN_TIMEOUT

    sched_task = asyncio.ensure_future(scheduler.start())
    serve_task = asyncio.ensure_future(server.serve())
    try:
        await asyncio.wait({sched_task, serve_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        server.should_exit = True
        sched_task.cancel()
        await scheduler.wait_idle()
        done, _ = await asyncio.wait({serve_task}, timeout=shutdown_timeout)
        if not done:
            log.warning("HTTP server did not stop in time", extra={"timeout": shutdown_timeout})
            serve_task.cancel()
        sched_result, serve_result = await asyncio.gather(sched_task, serve_task, return_exceptions=True)

    if isinstance(sched_result, Exception):
        raise sched_result
    if isinstance(serve_result, Exception):
        raise serve_result


async def run_once_manual(config: AppConfig, builder=build_app) -> int:
    deps = builder(config)
    database.init_db()
    return await deps.scheduler.run_once()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remote job crawler and API server")
    parser.add_argument("--once", action="store_true", help="run one crawl cycle and exit")
    parser.add_argument("--config", default=None, help="config file (defaults to CONFIG_FILE or config.yaml)")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    config = load_config(args.config)

    if args.once:
        created = await run_once_manual(config)
        log.info("Run once finished", extra={"created_jobs": created})
        return

    deps = build_app(config)
    subscriptions = SubscriptionService(
        database,
        allowed_channels=config.subscription.allowed_channels,
        tag_candidates=config.processor.tag_candidates,
    )
    app = create_app(
        scheduler=deps.scheduler,
        store=database,
        subscription_service=subscriptions,
        config=config,
    )

    host, port = parse_addr(config.server.addr)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    log.info("Listening", extra={"host": host, "port": port})
    await run_server(server, deps.scheduler)


if __name__ == "__main__":
    asyncio.run(main())
