from datetime import datetime, timezone

import httpx

from locallore import api, models
from locallore.timeutils import normalize_dt


def _payload(helpers, **overrides):
    payload = {
        "title": "Free Pizza Study Night",
        "description": "Bring your problem sets",
        "latitude": 40.1020,
        "longitude": -88.2272,
        "location": "Grainger Library",
        "start_time": helpers["future_time"](days=3),
        "end_time": helpers["future_time"](days=3, hours=2),
        "category": "Academic",
        "tags": ["Study", " Pizza ", "Study"],
    }
    payload.update(overrides)
    return payload


def test_create_event_requires_auth(helpers):
    resp = helpers["client"].post("/api/events", json=_payload(helpers))
    assert resp.status_code == 401


def test_create_event_rejects_inverted_time_window(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu")
    resp = client.post(
        "/api/events",
        json=_payload(helpers, end_time=helpers["future_time"](days=2)),
        headers=helpers["auth_header"](owner),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "http_400"


def test_create_event_rejects_out_of_range_coordinates(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu")
    resp = client.post("/api/events", json=_payload(helpers, latitude=123.0), headers=helpers["auth_header"](owner))
    assert resp.status_code == 422


def test_create_and_read_event(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu", display_name="Robotics Club")
    resp = client.post("/api/events", json=_payload(helpers), headers=helpers["auth_header"](owner))
    assert resp.status_code == 201
    body = resp.json()
    assert body["user_id"] == owner.id
    assert body["tags"] == ["Study", "Pizza"]
    assert body["view_count"] == 0
    assert body["creator"]["display_name"] == "Robotics Club"

    fetched = client.get(f"/api/events/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Free Pizza Study Night"

    assert client.get(f"/api/events/{helpers['new_id']()}").status_code == 404


def test_naive_times_are_read_as_campus_time(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu")
    resp = client.post(
        "/api/events",
        json=_payload(helpers, start_time="2030-01-15T18:30:00", end_time="2030-01-15T20:00:00"),
        headers=helpers["auth_header"](owner),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["start_time"].startswith("2030-01-15T23:30:00")
    assert body["start_time_display"] == "Jan 15, 6:30 PM EST"
    assert body["end_time_display"] == "Jan 15, 8:00 PM EST"


def test_only_owner_can_update_or_delete(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu")
    other = helpers["make_user"]("other@campus.edu")
    event = helpers["make_event"](owner)

    forbidden = client.put(f"/api/events/{event.id}", json={"title": "Hijacked"}, headers=helpers["auth_header"](other))
    assert forbidden.status_code == 403
    assert client.delete(f"/api/events/{event.id}", headers=helpers["auth_header"](other)).status_code == 403

    updated = client.put(
        f"/api/events/{event.id}",
        json={"title": "Study Group (moved)", "location": "Siebel Center"},
        headers=helpers["auth_header"](owner),
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Study Group (moved)"
    assert updated.json()["location"] == "Siebel Center"


def test_update_rejects_end_before_existing_start(helpers):
    client = helpers["client"]
    owner = helpers["make_user"]("owner@campus.edu")
    event = helpers["make_event"](owner)
    resp = client.put(
        f"/api/events/{event.id}",
        json={"end_time": helpers["future_time"](days=0, hours=1)},
        headers=helpers["auth_header"](owner),
    )
    assert resp.status_code == 400


def test_delete_event_removes_its_interactions(helpers):
    client = helpers["client"]
    db = helpers["db"]
    owner = helpers["make_user"]("owner@campus.edu")
    student = helpers["make_user"]("student@campus.edu")
    event = helpers["make_event"](owner)
    event_id = event.id
    client.post(f"/api/events/{event_id}/interact", json={"type": "bookmark"}, headers=helpers["auth_header"](student))

    resp = client.delete(f"/api/events/{event_id}", headers=helpers["auth_header"](owner))
    assert resp.status_code == 204

    db.expire_all()
    assert db.query(models.Event).filter(models.Event.id == event_id).first() is None
    assert db.query(models.UserEventInteraction).filter(models.UserEventInteraction.event_id == event_id).count() == 0


def test_quality_score_is_stored_after_create(helpers):
    client = helpers["client"]
    db = helpers["db"]
    owner = helpers["make_user"]("owner@campus.edu")
    helpers["install_ml"](
        lambda request: httpx.Response(200, json={"quality_score": 0.82, "spam_probability": 0.03, "is_spam": False})
    )

    resp = client.post("/api/events", json=_payload(helpers), headers=helpers["auth_header"](owner))
    assert resp.status_code == 201

    db.expire_all()
    score = db.query(models.EventQualityScore).filter(models.EventQualityScore.event_id == resp.json()["id"]).one()
    assert score.quality_score == 0.82
    assert score.is_spam is False


def test_create_and_scoring_stamp_times_from_the_shared_clock(helpers, monkeypatch):
    client = helpers["client"]
    db = helpers["db"]
    owner = helpers["make_user"]("owner@campus.edu")
    frozen = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    monkeypatch.setattr(api, "utcnow", lambda: frozen)
    helpers["install_ml"](
        lambda request: httpx.Response(200, json={"quality_score": 0.6, "spam_probability": 0.1, "is_spam": False})
    )

    resp = client.post("/api/events", json=_payload(helpers), headers=helpers["auth_header"](owner))
    assert resp.status_code == 201
    assert resp.json()["created_at"].startswith("2030-01-02T03:04:05")

    db.expire_all()
    score = db.query(models.EventQualityScore).filter(models.EventQualityScore.event_id == resp.json()["id"]).one()
    assert normalize_dt(score.scored_at) == frozen


def test_quality_scoring_failure_does_not_block_create(helpers):
    client = helpers["client"]
    db = helpers["db"]
    owner = helpers["make_user"]("owner@campus.edu")

    resp = client.post("/api/events", json=_payload(helpers), headers=helpers["auth_header"](owner))
    assert resp.status_code == 201
    db.expire_all()
    assert db.query(models.EventQualityScore).count() == 0
