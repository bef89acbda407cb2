import asyncio
import logging
import types

import pytest

from core import database
from core.config import EmailConfig
from core.models import Job, Subscription
from worker.notifier import (
    DEFAULT_SUBJECT,
    EmailNotifier,
    LogNotifier,
    SubscriptionNotifier,
    build_body,
    filter_jobs_for_subscription,
    is_truthy,
)

EMAIL = EmailConfig(host="smtp.example.com", sender="bot@example.com")


class StubSender:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    async def send(self, msg):
        if set(msg.to) & self.fail_for:
            raise RuntimeError(f"smtp refused {msg.to[0]}")
        self.sent.append(msg)


def _job(job_id, **tags):
    return Job(
        id=job_id,
        title=f"Job {job_id}",
        source="eleduck",
        url=f"https://eleduck.com/posts/{job_id}",
        normalized_tags=tags,
    )


def _subs(*subs):
    return types.SimpleNamespace(list_subscriptions=lambda: list(subs))


def test_each_subscriber_gets_only_matching_jobs():
    jobs = [_job("1", backend=True), _job("2", frontend=True)]
    subs = _subs(
        Subscription(id=1, email="a@example.com", tags={"backend": True}),
        Subscription(id=2, email="b@example.com", tags={"frontend": True}),
        Subscription(id=3, email="c@example.com", tags={"mobile": True}),
    )
    sender = StubSender()

    asyncio.run(SubscriptionNotifier(subs, EMAIL, sender).notify(jobs))

    assert [(m.to, m.body) for m in sender.sent] == [
        (["a@example.com"], build_body([jobs[0]])),
        (["b@example.com"], build_body([jobs[1]])),
    ]
    assert all(m.sender == "bot@example.com" for m in sender.sent)
    assert all(m.subject == DEFAULT_SUBJECT for m in sender.sent)


def test_subscriber_without_tags_gets_everything():
    jobs = [_job("1", backend=True), _job("2")]
    assert filter_jobs_for_subscription(Subscription(email="x@example.com"), jobs) == jobs


def test_flags_in_any_encoding_match():
    job = _job("1", backend="TRUE", remote=1)
    sub = Subscription(email="x@example.com", tags={"backend": "true", "remote": True, "ignored": False})
    assert filter_jobs_for_subscription(sub, [job]) == [job]

    assert is_truthy(True) and is_truthy(" true ") and is_truthy(2) and is_truthy([])
    assert not is_truthy("yes") and not is_truthy(0) and not is_truthy(None) and not is_truthy(False)


def test_fallback_used_when_nobody_subscribed():
    fallback_sender = StubSender()
    fallback = EmailNotifier(EmailConfig(sender="bot@example.com", to=["ops@example.com"]), fallback_sender)
    sender = StubSender()

    asyncio.run(SubscriptionNotifier(_subs(), EMAIL, sender, fallback=fallback).notify([_job("1")]))

    assert sender.sent == []
    assert [m.to for m in fallback_sender.sent] == [["ops@example.com"]]


def test_unsupported_channel_is_skipped():
    sender = StubSender()
    subs = _subs(
        Subscription(id=1, email="a@example.com", channel="slack"),
        Subscription(id=2, email="b@example.com", channel="EMAIL"),
    )

    asyncio.run(SubscriptionNotifier(subs, EMAIL, sender).notify([_job("1")]))

    assert [m.to for m in sender.sent] == [["b@example.com"]]


def test_failure_is_raised_after_trying_everyone():
    sender = StubSender(fail_for={"a@example.com"})
    subs = _subs(
        Subscription(id=1, email="a@example.com"),
        Subscription(id=2, email="b@example.com"),
    )

    with pytest.raises(RuntimeError, match="a@example.com"):
        asyncio.run(SubscriptionNotifier(subs, EMAIL, sender).notify([_job("1")]))

    assert [m.to for m in sender.sent] == [["b@example.com"]]


def test_subscriptions_read_from_database():
    database.add_subscription(Subscription(email="db@example.com", tags={"backend": True}))
    sender = StubSender()

    asyncio.run(SubscriptionNotifier(database, EMAIL, sender).notify([_job("1", backend=True), _job("2")]))

    assert len(sender.sent) == 1
    assert sender.sent[0].to == ["db@example.com"]
    assert "Job 1" in sender.sent[0].body
    assert "Job 2" not in sender.sent[0].body


def test_email_notifier_skips_empty_batches():
    sender = StubSender()
    notifier = EmailNotifier(EmailConfig(sender="bot@example.com", to=["ops@example.com"], subject="Jobs!"), sender)

    asyncio.run(notifier.notify([]))
    assert sender.sent == []

    asyncio.run(notifier.notify([_job("1")]))
    assert sender.sent[0].subject == "Jobs!"
    assert sender.sent[0].body == "New remote jobs:\n- Job 1 (eleduck) https://eleduck.com/posts/1\n"


def test_log_notifier_logs_each_job(caplog):
    caplog.set_level(logging.INFO, logger="worker.notify")

    asyncio.run(LogNotifier().notify([_job("1"), _job("2")]))

    messages = [r.getMessage() for r in caplog.records if r.name == "worker.notify"]
    assert messages == [
        "new job: Job 1 (eleduck) https://eleduck.com/posts/1",
        "new job: Job 2 (eleduck) https://eleduck.com/posts/2",
    ]
