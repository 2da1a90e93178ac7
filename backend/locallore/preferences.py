from collections import Counter
from typing import Iterable

from sqlalchemy.orm import Session

from . import models
from .config import settings


def _dedupe(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(value for value in values if value))


class PreferenceAggregator:
    """Ranks the topics a user cares about.

    Explicit profile preferences come first in their stored order, followed by the
    categories of the user's most recent interactions, most frequent first. The
    result is a hint for the recommenders, never a filter.
    """

    def __init__(self, db: Session, history_limit: int | None = None):
        self.db = db
        self.history_limit = history_limit or settings.preference_history_limit

    def rank(self, user_id: str) -> list[str]:
        explicit = self.explicit_preferences(user_id)
        implicit = self.interaction_categories(user_id)
        return _dedupe([*explicit, *implicit])

    def explicit_preferences(self, user_id: str) -> list[str]:
        row = self.db.query(models.User.preferences).filter(models.User.id == user_id).first()
        if not row or not row[0]:
            return []
        return [str(item) for item in row[0] if item]

    def interaction_categories(self, user_id: str) -> list[str]:
        recent = (
            self.db.query(models.UserEventInteraction.event_id)
            .filter(models.UserEventInteraction.user_id == user_id)
            .order_by(models.UserEventInteraction.created_at.desc(), models.UserEventInteraction.id.desc())
            .limit(self.history_limit)
            .all()
        )
        event_ids = [row[0] for row in recent]
        if not event_ids:
            return []

        category_by_event = dict(
            self.db.query(models.Event.id, models.Event.category).filter(models.Event.id.in_(set(event_ids))).all()
        )
        # Counter keeps insertion order and sorted() is stable, so ties stay in first-observed order.
        counts = Counter(category_by_event[event_id] for event_id in event_ids if category_by_event.get(event_id))
        return [category for category, _count in sorted(counts.items(), key=lambda item: item[1], reverse=True)]
