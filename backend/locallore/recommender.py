import math
import random
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from . import models
from .logging_utils import log_event
from .queries import active_events_query, exclude_ids


class RuleBasedRecommender:
    """Non-personalized fallback: the newest half of the active corpus in a fresh random order.

    The shuffle is re-rolled on every call, so two calls over an unchanged corpus return
    the same candidates in a possibly different order.
    """

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    def candidates(self, exclude_event_ids: Iterable[str] = ()) -> list[models.Event]:
        query = exclude_ids(active_events_query(self.db), exclude_event_ids)
        events = query.order_by(models.Event.created_at.desc(), models.Event.id.asc()).all()
        return events[: math.ceil(len(events) / 2)]

    def select(self, exclude_event_ids: Iterable[str] = (), limit: int = 20, offset: int = 0) -> list[models.Event]:
        newest_half = self.candidates(exclude_event_ids)
        self.rng.shuffle(newest_half)
        page = newest_half[offset : offset + limit]
        log_event("rule_based_selected", candidates=len(newest_half), returned=len(page), offset=offset, limit=limit)
        return page
