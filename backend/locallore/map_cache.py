"""Cache for the map view: event lists per bounding box and per-session view state."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .logging_utils import log_event, log_warning
from .realtime import Change, ChangeFeed, Subscription

Clock = Callable[[], float]
Bounds = tuple[float, float, float, float]

DEFAULT_KEY = "map_default"


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


def cache_key(bounds: Optional[Bounds] = None) -> str:
    """``bounds`` is ``(sw_lng, sw_lat, ne_lng, ne_lat)``."""
    if bounds is None:
        return DEFAULT_KEY
    sw_lng, sw_lat, ne_lng, ne_lat = bounds
    return f"map_{sw_lng}_{sw_lat}_{ne_lng}_{ne_lat}"


def _is_event_content_change(change: Change) -> bool:
    return change.table == "events" and change.record.get("field") != "view_count"


class MapCache:
    def __init__(
        self,
        clock: Clock = time.monotonic,
        *,
        event_ttl_seconds: float = 120,
        session_ttl_seconds: float = 30 * 60,
    ):
        self.clock = clock
        self.event_ttl_seconds = event_ttl_seconds
        self.session_ttl_seconds = session_ttl_seconds
        self._events: dict[str, CacheEntry] = {}
        self._sessions: dict[str, CacheEntry] = {}
        self._subscription: Optional[Subscription] = None

    def _fresh(self, entry: CacheEntry, ttl: float) -> bool:
        return self.clock() - entry.stored_at < ttl

    def get_events(self, bounds: Optional[Bounds] = None, use_session_ttl: bool = False) -> Optional[list]:
        entry = self._events.get(cache_key(bounds))
        ttl = self.session_ttl_seconds if use_session_ttl else self.event_ttl_seconds
        if entry is not None and self._fresh(entry, ttl):
            return entry.value
        return None

    def set_events(self, events: list, bounds: Optional[Bounds] = None) -> None:
        self._events[cache_key(bounds)] = CacheEntry(value=list(events), stored_at=self.clock())

    def get_session_state(self, session_id: str) -> Optional[dict]:
        entry = self._sessions.get(session_id)
        if entry is not None and self._fresh(entry, self.session_ttl_seconds):
            return entry.value
        return None

    def set_session_state(self, session_id: str, state: dict) -> None:
        self._sessions[session_id] = CacheEntry(value=dict(state), stored_at=self.clock())

    def preload(self, fetch: Callable[[], list], bounds: Optional[Bounds] = None) -> list:
        cached = self.get_events(bounds)
        if cached is not None:
            return cached
        try:
            events = fetch()
        except Exception as exc:  # noqa: BLE001
            log_warning("map_preload_failed", key=cache_key(bounds), error=str(exc))
            return []
        self.set_events(events, bounds)
        return events

    def invalidate(self) -> None:
        if self._events:
            log_event("map_cache_invalidated", entries=len(self._events))
        self._events.clear()

    def cleanup_expired(self) -> int:
        now = self.clock()
        removed = 0
        for store in (self._events, self._sessions):
            expired = [key for key, entry in store.items() if now - entry.stored_at > self.session_ttl_seconds]
            for key in expired:
                del store[key]
            removed += len(expired)
        if removed:
            log_event("map_cache_cleanup", removed=removed)
        return removed

    def stats(self) -> dict:
        now = self.clock()
        return {
            "size": len(self._events) + len(self._sessions),
            "keys": [*self._events.keys(), *self._sessions.keys()],
            "ages": [now - entry.stored_at for entry in [*self._events.values(), *self._sessions.values()]],
        }

    def bind(self, feed: ChangeFeed) -> Subscription:
        """Invalidate cached event lists whenever event content changes. View counter bumps are ignored."""
        self.unbind()
        self._subscription = feed.on_change(_is_event_content_change, lambda _change: self.invalidate())
        return self._subscription

    def unbind(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
