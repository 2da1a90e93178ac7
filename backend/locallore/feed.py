"""Assembly of the personalized "For You" feed.

Segments, in output order:

1. ML recommendations hydrated into active events, in ML score order;
2. rule-based top-up (shuffled newest half of the corpus);
3. popularity top-up by view count, used only when the page is still short.

Personalization failures are recovered here; storage failures in the final
queries surface as :class:`~locallore.errors.FeedUnavailable`.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import models, schemas
from .config import settings
from .errors import FeedUnavailable
from .logging_utils import log_event, log_warning
from .ml_gateway import MLRecommendationGateway
from .preferences import PreferenceAggregator
from .queries import active_events_query, popular_events
from .recommender import RuleBasedRecommender


def page_window(page: int, limit: int) -> tuple[int, int]:
    return limit, (page - 1) * limit


def _dedupe_events(events: list[models.Event]) -> list[models.Event]:
    seen: set[str] = set()
    unique = []
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique


class FeedAssembler:
    def __init__(
        self,
        db: Session,
        *,
        preferences: PreferenceAggregator,
        gateway: MLRecommendationGateway,
        recommender: RuleBasedRecommender,
        limit: Optional[int] = None,
    ):
        self.db = db
        self.preferences = preferences
        self.gateway = gateway
        self.recommender = recommender
        self.limit = limit or settings.feed_page_size

    async def get_feed(self, user_id: str, page: int = 1) -> list[models.Event]:
        # Queries run in the threadpool so only the ML call is awaited on the event loop.
        ranked = await run_in_threadpool(self.preferences.rank, user_id)
        recommendations = await self.gateway.fetch_recommendations(user_id, ranked)
        return await run_in_threadpool(self.assemble, user_id, page, recommendations, len(ranked))

    def assemble(
        self,
        user_id: str,
        page: int,
        recommendations: Optional[list[schemas.Recommendation]],
        preference_count: int = 0,
    ) -> list[models.Event]:
        limit, offset = page_window(page, self.limit)

        ml_events: list[models.Event] = []
        rule_events: list[models.Event] = []
        popular: list[models.Event] = []
        try:
            if recommendations is not None:
                ml_events, hydrated_total = self.hydrate(recommendations, limit=limit, offset=offset)
                if len(ml_events) < limit:
                    rule_events = self.recommender.select(
                        exclude_event_ids=[event.id for event in ml_events],
                        limit=limit - len(ml_events),
                        offset=max(0, offset - hydrated_total),
                    )
            else:
                rule_events = self.recommender.select(exclude_event_ids=(), limit=limit, offset=offset)

            events = _dedupe_events([*ml_events, *rule_events])
            if len(events) < limit:
                popular = popular_events(
                    self.db,
                    limit=limit - len(events),
                    exclude_event_ids=[event.id for event in events],
                )
                events = _dedupe_events([*events, *popular])
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_warning("feed_query_failed", user_id=user_id, page=page, error=str(exc))
            raise FeedUnavailable() from exc

        log_event(
            "feed_assembled",
            user_id=user_id,
            page=page,
            source="ml" if recommendations is not None else "rules",
            preferences=preference_count,
            ml_count=len(ml_events),
            rule_count=len(rule_events),
            popular_count=len(popular),
        )
        return events[:limit]

    def hydrate(
        self, recommendations: list[schemas.Recommendation], *, limit: int, offset: int
    ) -> tuple[list[models.Event], int]:
        """Load recommended events that are still active, highest score first.

        Unscored entries follow the scored ones; ties keep the order the ML service sent.
        Returns the requested window and the total number of hydratable events.
        Storage errors are logged and treated as an empty hydration.
        """
        ranked = sorted(
            recommendations,
            key=lambda rec: (rec.score is None, -(rec.score or 0.0)),
        )
        order = {}
        for position, rec in enumerate(ranked):
            order.setdefault(rec.event_id, position)
        try:
            rows = (
                active_events_query(self.db)
                .filter(models.Event.id.in_(list(order)))
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_warning("ml_hydration_failed", error=str(exc))
            return [], 0
        rows.sort(key=lambda event: order[event.id])
        return rows[offset : offset + limit], len(rows)
