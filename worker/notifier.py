"""
New-job notifications.

SubscriptionNotifier fans jobs out per subscriber (filtered by the subscriber's
tags); EmailNotifier formats and sends one plain-text message; LogNotifier only
logs, for local runs.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from app.email_utils import send_email_message
from core.config import EmailConfig
from core.models import Job, Subscription, is_truthy

log = logging.getLogger("worker.notifier")

DEFAULT_SUBJECT = "New remote jobs"


@dataclass
class EmailMessage:
    sender: str
    to: List[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""


class SMTPSender:
    """Sends EmailMessages over SMTP in a worker thread."""

    def __init__(self, config: EmailConfig):
        self.config = config

    async def send(self, msg: EmailMessage) -> None:
        await asyncio.to_thread(
            send_email_message,
            host=self.config.host,
            port=self.config.port,
            username=self.config.username,
            password=self.config.password,
            sender=msg.sender,
            to=msg.to,
            subject=msg.subject,
            body=msg.body,
        )


def build_body(jobs: List[Job]) -> str:
    lines = ["New remote jobs:"]
    for job in jobs:
        lines.append(f"- {job.title} ({job.source}) {job.url}")
    return "\n".join(lines) + "\n"


class EmailNotifier:
    def __init__(self, config: EmailConfig, sender=None):
        if not config.subject:
            config = replace(config, subject=DEFAULT_SUBJECT)
        self.config = config
        self.sender = sender or SMTPSender(config)

    async def notify(self, jobs: List[Job]) -> None:
        if not jobs:
            return
        msg = EmailMessage(
            sender=self.config.sender,
            to=list(self.config.to),
            subject=self.config.subject,
            body=build_body(jobs),
        )
        await self.sender.send(msg)
        log.info("Jobs emailed", extra={"to": ",".join(msg.to), "jobs": len(jobs)})


class LogNotifier:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("worker.notify")

    async def notify(self, jobs: List[Job]) -> None:
        for job in jobs:
            self.logger.info("new job: %s (%s) %s", job.title, job.source, job.url)


def job_matches(job: Job, tags: Dict[str, Any]) -> bool:
    """Every truthy tag of the subscription must be truthy on the job."""
    normalized = job.normalized_tags or {}
    for tag, flag in (tags or {}).items():
        if not is_truthy(flag):
            continue
        if not is_truthy(normalized.get(tag)):
            return False
    return True


def filter_jobs_for_subscription(sub: Subscription, jobs: List[Job]) -> List[Job]:
    if not sub.tags:
        return list(jobs)
    return [job for job in jobs if job_matches(job, sub.tags)]


class SubscriptionNotifier:
    """
    Routes new jobs to each subscriber's channel.

    `subscriptions` is anything with a blocking `list_subscriptions()`; the
    core.database module is used when none is given. With no subscriptions at
    all, jobs go to `fallback` (when set).
    """

    def __init__(
        self,
        subscriptions=None,
        email_config: Optional[EmailConfig] = None,
        sender=None,
        fallback=None,
    ):
        if subscriptions is None:
            import core.database as subscriptions

        self.subscriptions = subscriptions
        self.email_config = email_config or EmailConfig()
        self.sender = sender or SMTPSender(self.email_config)
        self.fallback = fallback

    async def notify(self, jobs: List[Job]) -> None:
        if not jobs:
            return

        subs = await asyncio.to_thread(self.subscriptions.list_subscriptions)
        if not subs:
            if self.fallback is not None:
                await self.fallback.notify(jobs)
            return

        first_error: Optional[Exception] = None
        for sub in subs:
            matches = filter_jobs_for_subscription(sub, jobs)
            if not matches:
                continue

            channel = (sub.channel or "").strip().lower()
            if channel not in ("", "email"):
                log.info("Skipping unsupported channel", extra={"channel": channel, "subscription_id": sub.id})
                continue

            notifier = EmailNotifier(replace(self.email_config, to=[sub.email]), self.sender)
            try:
                await notifier.notify(matches)
            except Exception as e:
                log.error("Failed to send email", extra={"to": sub.email, "error": str(e)})
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error


__all__ = [
    "DEFAULT_SUBJECT",
    "EmailMessage",
    "SMTPSender",
    "EmailNotifier",
    "LogNotifier",
    "SubscriptionNotifier",
    "build_body",
    "filter_jobs_for_subscription",
    "job_matches",
    "is_truthy",
]
