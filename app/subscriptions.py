"""
Subscription validation: checks a sign-up request and stores it.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from email_validator import EmailNotValidError, validate_email

from core.models import Subscription

log = logging.getLogger(__name__)


class SubscriptionError(ValueError):
    """The subscription request is invalid."""


class SubscriptionService:
    """
    `store` is anything with a blocking `add_subscription(Subscription)`;
    the core.database module is used when none is given.
    """

    def __init__(
        self,
        store=None,
        allowed_channels: Optional[Iterable[str]] = None,
        tag_candidates: Optional[Iterable[str]] = None,
    ):
        if store is None:
            import core.database as store

        self.store = store
        self.channels = {c.strip().lower() for c in (allowed_channels or []) if c and c.strip()}
        if not self.channels:
            self.channels = {"email"}
        self.tags = {}
        for tag in tag_candidates or []:
            trimmed = (tag or "").strip()
            if trimmed:
                self.tags[trimmed.lower()] = trimmed

    def create(self, email: str, channel: str = "", tags: Optional[List[str]] = None) -> Subscription:
        email = (email or "").strip()
        if not email:
            raise SubscriptionError("email required")
        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise SubscriptionError(f"invalid email: {e}") from e

        channel = (channel or "").strip().lower() or "email"
        if channel not in self.channels:
            raise SubscriptionError(f"unsupported channel {channel}")

        tag_map = {}
        for tag in tags or []:
            key = (tag or "").strip().lower()
            if not key:
                continue
            canonical = self.tags.get(key)
            if canonical is None:
                if self.tags:
                    raise SubscriptionError(f"unknown tag {tag}")
                canonical = tag.strip()
            tag_map[canonical] = True

        sub = self.store.add_subscription(Subscription(email=email, channel=channel, tags=tag_map))
        log.info("Subscription created", extra={"channel": channel, "tags": ",".join(tag_map)})
        return sub


__all__ = [
    "SubscriptionError",
    "SubscriptionService",
]
