"""In-process change notifications.

Write paths publish a :class:`Change` for every row they insert, update or delete.
Dependent views (attendee counts, bookmark lists, the map cache) register a
predicate and a callback and refresh when a matching change arrives. Nothing here
knows about the transport a hosted backend would use for the same purpose.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from .logging_utils import log_warning

Predicate = Callable[["Change"], bool]
Callback = Callable[["Change"], None]

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class Change:
    table: str
    action: str
    record: dict[str, Any] = field(default_factory=dict)


def matches(table: str, **fields: Any) -> Predicate:
    """Predicate accepting changes on ``table`` whose record carries every given field value."""

    def _predicate(change: Change) -> bool:
        if change.table != table:
            return False
        return all(change.record.get(key) == value for key, value in fields.items())

    return _predicate


class Subscription:
    def __init__(self, feed: ChangeFeed, predicate: Predicate, callback: Callback):
        self._feed = feed
        self.predicate = predicate
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *_exc) -> None:
        self.unsubscribe()


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def on_change(self, predicate: Predicate, callback: Callback) -> Subscription:
        subscription = Subscription(self, predicate, callback)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, change: Change) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                if subscription.predicate(change):
                    subscription.callback(change)
            except Exception as exc:  # noqa: BLE001
                log_warning("change_subscriber_failed", table=change.table, action=change.action, error=str(exc))

    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
