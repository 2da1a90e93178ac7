import httpx

from locallore.tagging import DEFAULT_TAGS, FALLBACK_CONFIDENCE, MAX_SUGGESTED_TAGS, rule_based_tags, suggest_tags_from_text


def test_keyword_tags_are_capped_and_deduped():
    tags = suggest_tags_from_text("Free pizza and coffee at the career networking night")
    assert len(tags) == MAX_SUGGESTED_TAGS
    assert len(set(tags)) == len(tags)
    assert tags[:3] == ["Free", "Social", "Pizza"]


def test_text_without_keywords_gets_default_tags():
    result = rule_based_tags("Quarterly update", "")
    assert result.tags == DEFAULT_TAGS
    assert result.source == "rules"
    assert set(result.confidence_scores.values()) == {FALLBACK_CONFIDENCE}


def test_tag_event_falls_back_to_rules_when_ml_is_down(helpers):
    resp = helpers["client"].post("/api/ml/tag-event", json={"title": "Study group", "description": "CS 225 review"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["source"] == "rules"
    assert "Study" in body["tags"]


def test_tag_event_uses_ml_tags_when_available(helpers):
    seen = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        tags = ["Music", "Cultural", "Free", "Social", "Food", "Outdoor"]
        return httpx.Response(200, json={"tags": tags, "confidence_scores": {tag: 0.9 for tag in tags}})

    helpers["install_ml"](_handler)
    resp = helpers["client"].post("/api/ml/tag-event", json={"title": "Jazz on the quad", "description": ""})
    body = resp.json()
    assert seen["path"] == "/tag-event"
    assert body["source"] == "ml"
    assert body["tags"] == ["Music", "Cultural", "Free", "Social", "Food"]
    assert "Outdoor" not in body["confidence_scores"]


def test_score_quality_reports_unavailable(helpers):
    resp = helpers["client"].post("/api/ml/score-quality", json={"title": "Title", "description": "Desc"})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "ml_unavailable"


def test_score_quality_derives_high_quality_flag(helpers):
    helpers["install_ml"](
        lambda request: httpx.Response(200, json={"quality_score": 0.75, "spam_probability": 0.1, "is_spam": False})
    )
    resp = helpers["client"].post("/api/ml/score-quality", json={"title": "Career fair", "description": "Booths"})
    assert resp.status_code == 200
    assert resp.json() == {
        "quality_score": 0.75,
        "spam_probability": 0.1,
        "is_spam": False,
        "is_high_quality": True,
    }


def test_ml_health(helpers):
    client = helpers["client"]
    assert client.get("/api/ml/health").json() == {"healthy": False}

    helpers["install_ml"](lambda request: httpx.Response(200, json={"status": "ok"}))
    assert client.get("/api/ml/health").json() == {"healthy": True}
