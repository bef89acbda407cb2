"""
Subscription storage re-exports.
"""
from core.db.subscriptions.subs_store import (
    add_subscription,
    list_subscriptions,
)

__all__ = [
    "add_subscription",
    "list_subscriptions",
]
