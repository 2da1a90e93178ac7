from locallore.map_cache import MapCache, cache_key
from locallore.realtime import INSERT, UPDATE, Change, ChangeFeed


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


BOUNDS = (-88.25, 40.09, -88.2, 40.12)


def test_cache_key_format():
    assert cache_key() == "map_default"
    assert cache_key(BOUNDS) == "map_-88.25_40.09_-88.2_40.12"


def test_event_entries_expire_after_ttl():
    clock = FakeClock()
    cache = MapCache(clock, event_ttl_seconds=120, session_ttl_seconds=1800)
    cache.set_events([{"id": "e1"}], BOUNDS)

    clock.advance(119)
    assert cache.get_events(BOUNDS) == [{"id": "e1"}]
    assert cache.get_events() is None

    clock.advance(2)
    assert cache.get_events(BOUNDS) is None
    assert cache.get_events(BOUNDS, use_session_ttl=True) == [{"id": "e1"}]


def test_session_state_lives_for_session_ttl():
    clock = FakeClock()
    cache = MapCache(clock, event_ttl_seconds=120, session_ttl_seconds=1800)
    cache.set_session_state("tab-1", {"center_lng": -88.2, "center_lat": 40.1, "zoom": 14})

    clock.advance(1799)
    assert cache.get_session_state("tab-1")["zoom"] == 14
    clock.advance(2)
    assert cache.get_session_state("tab-1") is None


def test_preload_fetches_once_and_failures_return_empty():
    clock = FakeClock()
    cache = MapCache(clock)
    calls = []

    def _fetch():
        calls.append(1)
        return [{"id": "e1"}]

    assert cache.preload(_fetch, BOUNDS) == [{"id": "e1"}]
    assert cache.preload(_fetch, BOUNDS) == [{"id": "e1"}]
    assert len(calls) == 1

    def _broken():
        raise RuntimeError("db down")

    assert cache.preload(_broken) == []
    assert cache.get_events() is None


def test_cleanup_removes_entries_older_than_session_ttl():
    clock = FakeClock()
    cache = MapCache(clock, session_ttl_seconds=1800)
    cache.set_events([], BOUNDS)
    cache.set_session_state("old", {"zoom": 10})
    clock.advance(1000)
    cache.set_session_state("fresh", {"zoom": 12})
    clock.advance(900)

    assert cache.cleanup_expired() == 2
    stats = cache.stats()
    assert stats["size"] == 1
    assert stats["keys"] == ["fresh"]
    assert stats["ages"] == [900]


def test_bound_cache_invalidates_on_event_changes_but_not_view_counts():
    feed = ChangeFeed()
    cache = MapCache(FakeClock())
    cache.bind(feed)
    cache.set_events([{"id": "e1"}])

    feed.publish(Change("events", UPDATE, {"id": "e1", "field": "view_count"}))
    assert cache.get_events() == [{"id": "e1"}]

    feed.publish(Change("user_event_interactions", INSERT, {"event_id": "e1"}))
    assert cache.get_events() == [{"id": "e1"}]

    feed.publish(Change("events", INSERT, {"id": "e2"}))
    assert cache.get_events() is None

    cache.unbind()
    assert feed.subscriber_count() == 0


def test_map_endpoint_filters_by_bounds_and_uses_cache(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu")
    inside = helpers["make_event"](owner, title="Quad Concert", latitude=40.10, longitude=-88.22)
    helpers["make_event"](owner, title="Far Away", latitude=41.88, longitude=-87.63)
    query = "sw_lng=-88.25&sw_lat=40.09&ne_lng=-88.2&ne_lat=40.12"

    first = client.get(f"/api/map/events?{query}")
    assert first.status_code == 200
    assert [item["id"] for item in first.json()["events"]] == [inside.id]

    # Written straight to the database, so no change is published and the cached list stays.
    helpers["make_event"](owner, title="Late Addition", latitude=40.11, longitude=-88.21)
    assert len(client.get(f"/api/map/events?{query}").json()["events"]) == 1

    created = client.post(
        "/api/events",
        json={
            "title": "Study Jam",
            "latitude": 40.1,
            "longitude": -88.23,
            "start_time": helpers["future_time"](days=2),
            "end_time": helpers["future_time"](days=2, hours=2),
        },
        headers=helpers["auth_header"](owner),
    )
    assert created.status_code == 201
    assert len(client.get(f"/api/map/events?{query}").json()["events"]) == 3

    assert len(client.get("/api/map/events").json()["events"]) == 4


def test_map_endpoint_rejects_partial_bounds(helpers):
    resp = helpers["client"].get("/api/map/events?sw_lng=-88.2&sw_lat=40.1")
    assert resp.status_code == 400


def test_map_session_roundtrip(helpers):
    client = helpers["client"]
    assert client.get("/api/map/session/tab-9").status_code == 404

    saved = client.put("/api/map/session/tab-9", json={"center_lng": -88.22, "center_lat": 40.1, "zoom": 16})
    assert saved.status_code == 200
    assert client.get("/api/map/session/tab-9").json() == {"center_lng": -88.22, "center_lat": 40.1, "zoom": 16.0}
