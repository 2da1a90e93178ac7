import random
from datetime import datetime, timedelta, timezone

from locallore.recommender import RuleBasedRecommender


def _corpus(helpers, count):
    owner = helpers["make_user"]("owner@campus.edu")
    base = datetime.now(timezone.utc) - timedelta(days=1)
    return [
        helpers["make_event"](owner, title=f"Event {i}", created_at=base + timedelta(minutes=i)) for i in range(count)
    ]


def test_rule_based_picks_newest_half_in_any_order(helpers):
    events = _corpus(helpers, 7)
    newest_four = {e.id for e in events[3:]}

    first = RuleBasedRecommender(helpers["db"], rng=random.Random(1)).select(limit=20)
    second = RuleBasedRecommender(helpers["db"], rng=random.Random(2)).select(limit=20)

    assert {e.id for e in first} == newest_four
    assert {e.id for e in second} == newest_four


def test_rule_based_respects_exclusions_and_window(helpers):
    events = _corpus(helpers, 6)
    recommender = RuleBasedRecommender(helpers["db"], rng=random.Random(3))

    picked = recommender.select(exclude_event_ids=[events[5].id], limit=2)
    assert len(picked) == 2
    assert events[5].id not in {e.id for e in picked}
    assert {e.id for e in picked} <= {events[4].id, events[3].id, events[2].id}

    assert recommender.select(limit=5, offset=10) == []


def test_rule_based_on_empty_corpus(helpers):
    assert RuleBasedRecommender(helpers["db"]).select() == []


def test_ended_events_are_never_candidates(helpers):
    owner = helpers["make_user"]("owner@campus.edu")
    helpers["make_event"](owner, title="Yesterday", start_in=timedelta(days=-1))
    live = helpers["make_event"](owner, title="Tomorrow")

    assert [e.id for e in RuleBasedRecommender(helpers["db"]).candidates()] == [live.id]
