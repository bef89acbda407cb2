"""
Crawl scheduler.

One cycle is: crawl -> upsert raw -> list pending raw -> classify each ->
upsert accepted -> notify genuinely new jobs. Each stage finishes for the whole
batch before the next one starts.

At most one cycle runs at a time per Scheduler. A trigger that arrives while a
cycle is running (timer or manual refresh) is dropped and returns 0.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from core.config import SchedulerConfig
from core.models import RAW_STATUS_PROCESSED, RAW_STATUS_REJECTED, Job
from worker.schedule import ScheduleError, parse_duration, parse_schedule

log = logging.getLogger("worker.scheduler")

DEFAULT_TIMEOUT = timedelta(seconds=30)
DEFAULT_BATCH_SIZE = 20


class CycleError(Exception):
    """A cycle stage failed; `stage` names it."""

    def __init__(self, stage: str, cause: Any):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage


class NotificationError(Exception):
    """Jobs were stored, but notifying about them failed."""

    def __init__(self, created: int, cause: Any):
        super().__init__(f"notify: {cause}")
        self.created = created


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _local_now() -> datetime:
    # cron fields are matched against the host wall clock
    return datetime.now().astimezone()


class IntervalTicker:
    """
    Puts a tick on `queue` every `interval` seconds. The queue holds one tick;
    ticks that arrive while it is full are dropped.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._task = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.queue.put_nowait(_utc_now())
            except asyncio.QueueFull:
                pass

    def stop(self) -> None:
        self._task.cancel()


def _resolve_timeout(value: Optional[str]) -> timedelta:
    if value:
        try:
            timeout = parse_duration(str(value))
        except ScheduleError:
            timeout = None
        if timeout is not None and timeout > timedelta(0):
            return timeout
    return DEFAULT_TIMEOUT


class Scheduler:
    def __init__(
        self,
        crawler,
        store=None,
        processor=None,
        notifier=None,
        config: Optional[SchedulerConfig] = None,
        ticker_factory: Callable[[float], Any] = IntervalTicker,
        sleep: Callable[[float], Any] = asyncio.sleep,
        now: Callable[[], datetime] = _local_now,
    ):
        if store is None:
            import core.database as store

        config = config or SchedulerConfig()
        self.crawler = crawler
        self.store = store
        self.processor = processor
        self.notifier = notifier
        self.schedule = parse_schedule(config.interval)
        self.timeout = _resolve_timeout(config.timeout)
        self.batch_size = config.batch_size if config.batch_size > 0 else DEFAULT_BATCH_SIZE

        self._ticker_factory = ticker_factory
        self._sleep = sleep
        self._now = now
        self._lock = threading.Lock()
        self._inflight: Optional[asyncio.Future] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def start(self) -> None:
        """Drive cycles until cancelled or until a cycle fails."""
        if self.crawler is None or self.store is None or self.processor is None:
            raise ValueError("scheduler missing dependencies")

        if self.schedule.cron is not None:
            log.info("Scheduler started", extra={"mode": "cron", "spec": self.schedule.cron.spec})
            await self._run_cron()
        else:
            seconds = self.schedule.interval.total_seconds()
            log.info("Scheduler started", extra={"mode": "interval", "seconds": seconds})
            await self._run_interval(seconds)

    async def _run_interval(self, seconds: float) -> None:
        ticker = self._ticker_factory(seconds)
        try:
            while True:
                await ticker.queue.get()
                await self.run_once()
                # coalesce ticks that piled up during the cycle
                while not ticker.queue.empty():
                    ticker.queue.get_nowait()
        finally:
            ticker.stop()

    async def _run_cron(self) -> None:
        cron = self.schedule.cron
        while True:
            now = self._now()
            next_at = cron.next(now)
            delay = max((next_at - now).total_seconds(), 0.0)
            log.info("Next cron run", extra={"at": next_at.isoformat()})
            await self._sleep(delay)
            await self.run_once()

    async def run_once(self) -> int:
        """
        Run one cycle now and return how many new jobs it stored.
        Returns 0 without doing anything if a cycle is already running.

        The cycle is shielded from the caller's cancellation; it ends on its
        own or at its timeout.
        """
        if not self._lock.acquire(blocking=False):
            log.info("Cycle already running, trigger dropped")
            return 0
        task = asyncio.ensure_future(self._guarded_cycle())
        self._inflight = task
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait for an in-flight cycle, if any, without raising its error."""
        task = self._inflight
        if task is not None and not task.done():
            await asyncio.wait([task])

    async def _guarded_cycle(self) -> int:
        try:
            return await asyncio.wait_for(self._run_cycle(), self.timeout.total_seconds())
        except asyncio.TimeoutError as e:
            raise CycleError("cycle", f"timed out after {self.timeout.total_seconds():g}s") from e
        finally:
            self._lock.release()

    async def _store_call(self, stage: str, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except Exception as e:
            raise CycleError(stage, e) from e

    async def _run_cycle(self) -> int:
        log.info("Cycle started")

        try:
            raw_jobs = await self.crawler.fetch()
        except Exception as e:
            raise CycleError("fetch jobs", e) from e

        await self._store_call("upsert raw jobs", self.store.upsert_raw_jobs, raw_jobs)
        pending = await self._store_call(
            "list raw jobs", self.store.list_raw_jobs, status="pending", limit=self.batch_size
        )

        accepted: List[Job] = []
        for raw in pending:
            try:
                result = await self.processor.process(raw)
            except Exception as e:
                raise CycleError(f"process raw job {raw.id}", e) from e

            if result.accepted:
                accepted.append(result.job)
                status, reason = RAW_STATUS_PROCESSED, ""
            else:
                status, reason = RAW_STATUS_REJECTED, result.reason
            await self._store_call(
                "update raw job status",
                self.store.update_raw_job_status,
                raw.id,
                status,
                reason=reason,
                trace=result.trace or None,
            )

        created = 0
        if accepted:
            res = await self._store_call("upsert jobs", self.store.upsert_jobs, accepted)
            created = res.created
            if self.notifier is not None and res.new_records:
                try:
                    await self.notifier.notify(res.new_records)
                except Exception as e:
                    log.error("Notification failed", extra={"created_jobs": created, "error": str(e)})
                    raise NotificationError(created, e) from e

        log.info(
            "Cycle finished",
            extra={
                "fetched": len(raw_jobs),
                "pending": len(pending),
                "accepted": len(accepted),
                "created_jobs": created,
            },
        )
        return created


__all__ = [
    "CycleError",
    "NotificationError",
    "IntervalTicker",
    "Scheduler",
]
