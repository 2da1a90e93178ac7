"""Client for the external ML service and the recommendation gateway built on it.

The ML service is stateless: every recommendation call ships the full active
corpus, all interactions and all user preferences. Any failure on that path is
converted to ``None`` so the feed can fall back to rule-based content.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import models, schemas
from .config import settings
from .errors import MLServiceError, UpstreamMalformed, UpstreamTimeout
from .logging_utils import log_event, log_warning
from .queries import active_events_query

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_uuid(value: object) -> bool:
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


class MLApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.ml_api_url).rstrip("/")
        self.timeout_seconds = settings.ml_timeout_seconds if timeout_seconds is None else timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _client_get(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                # The race in `_post` enforces the budget; this only bounds sockets left behind.
                timeout=httpx.Timeout(self.timeout_seconds * 5),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await asyncio.wait_for(
                self._client_get().post(path, json=payload),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamTimeout(f"{path} exceeded {self.timeout_seconds:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise MLServiceError(f"{path} request failed: {exc}") from exc

        if response.status_code >= 400:
            log_warning(
                "ml_api_error_status",
                path=path,
                status_code=response.status_code,
                reason=response.reason_phrase,
                details=response.text[:500],
            )
            raise MLServiceError(f"{path} returned {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamMalformed(f"{path} returned invalid JSON") from exc

    async def recommend_events(self, request: schemas.RecommendEventsRequest) -> Any:
        return await self._post("/recommend-events", request.model_dump(mode="json"))

    async def tag_event(self, title: str, description: str) -> schemas.TagEventResponse:
        data = await self._post("/tag-event", {"title": title.strip(), "description": description.strip()})
        if not isinstance(data, dict):
            raise UpstreamMalformed("/tag-event returned a non-object body")
        try:
            return schemas.TagEventResponse(
                tags=data.get("tags") or [],
                confidence_scores=data.get("confidence_scores") or {},
                source="ml",
            )
        except ValueError as exc:
            raise UpstreamMalformed("/tag-event returned an invalid body") from exc

    async def score_quality(self, title: str, description: str) -> schemas.QualityScoreResponse:
        data = await self._post("/score-quality", {"title": title, "description": description})
        if not isinstance(data, dict):
            raise UpstreamMalformed("/score-quality returned a non-object body")
        try:
            return schemas.QualityScoreResponse(
                quality_score=data.get("quality_score"),
                spam_probability=data.get("spam_probability"),
                is_spam=data.get("is_spam"),
            )
        except ValueError as exc:
            raise UpstreamMalformed("/score-quality returned an invalid body") from exc

    async def check_health(self) -> bool:
        try:
            response = await asyncio.wait_for(self._client_get().get("/health"), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.HTTPError):
            return False
        return response.is_success


def filter_recommendations(raw: Any) -> list[schemas.Recommendation]:
    """Keep entries whose ``event_id`` is a well-formed UUID, in the order returned."""
    if not isinstance(raw, dict):
        raise UpstreamMalformed("/recommend-events returned a non-object body")
    entries = raw.get("recommended_events") or []
    if not isinstance(entries, list):
        raise UpstreamMalformed("recommended_events is not a list")

    valid: list[schemas.Recommendation] = []
    for entry in entries:
        event_id = entry.get("event_id") if isinstance(entry, dict) else None
        if not is_valid_uuid(event_id):
            log_warning("ml_recommendation_invalid_event_id", event_id=str(event_id))
            continue
        score = entry.get("score")
        valid.append(
            schemas.Recommendation(
                event_id=event_id.lower(),
                score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
            )
        )
    return valid


class MLRecommendationGateway:
    def __init__(self, db: Session, client: MLApiClient, *, enabled: bool | None = None, limit: int | None = None):
        self.db = db
        self.client = client
        self.enabled = settings.ml_recommendations_enabled if enabled is None else enabled
        self.limit = limit or settings.feed_page_size

    def build_request(self, user_id: str, ranked_preferences: list[str]) -> schemas.RecommendEventsRequest:
        events = (
            active_events_query(self.db)
            .order_by(models.Event.created_at.desc(), models.Event.id.asc())
            .all()
        )
        interactions = self.db.query(models.UserEventInteraction).all()
        users = self.db.query(models.User.id, models.User.preferences).all()
        return schemas.RecommendEventsRequest(
            user_id=user_id,
            preferences=list(ranked_preferences or []),
            limit=self.limit,
            events=[schemas.EventProjection.model_validate(event) for event in events],
            interactions=[schemas.InteractionRow.model_validate(row) for row in interactions],
            users=[schemas.UserProjection(id=row.id, preferences=row.preferences) for row in users],
        )

    async def fetch_recommendations(
        self, user_id: str, ranked_preferences: list[str]
    ) -> Optional[list[schemas.Recommendation]]:
        if not self.enabled:
            return None
        try:
            request = await run_in_threadpool(self.build_request, user_id, ranked_preferences)
            log_event(
                "ml_recommendations_requested",
                user_id=user_id,
                events=len(request.events),
                interactions=len(request.interactions),
                users=len(request.users),
            )
            raw = await self.client.recommend_events(request)
            recommendations = filter_recommendations(raw)
        except UpstreamTimeout:
            log_warning("ml_recommendations_timeout", user_id=user_id, timeout_seconds=self.client.timeout_seconds)
            return None
        except SQLAlchemyError as exc:
            # Leave the session usable for the rule-based feed.
            await run_in_threadpool(self.db.rollback)
            log_warning("ml_corpus_query_failed", user_id=user_id, error=str(exc))
            return None
        except Exception as exc:  # noqa: BLE001
            log_warning("ml_recommendations_failed", user_id=user_id, error=str(exc))
            return None

        if not recommendations:
            log_warning("ml_recommendations_empty", user_id=user_id)
            return None
        log_event("ml_recommendations_received", user_id=user_id, count=len(recommendations))
        return recommendations
