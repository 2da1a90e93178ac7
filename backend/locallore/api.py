from contextlib import asynccontextmanager, suppress
from datetime import datetime
from pathlib import Path
from typing import Optional
import asyncio
import logging

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session, joinedload

from . import auth, models, schemas
from .config import settings
from .database import SessionLocal, engine, get_db
from .errors import LocalLoreError, MLServiceError, MLServiceUnavailable
from .feed import FeedAssembler, page_window
from .interactions import InteractionTracker
from .logging_utils import RequestIdMiddleware, configure_logging, log_event, log_warning
from .map_cache import MapCache
from .ml_gateway import MLApiClient, MLRecommendationGateway
from .preferences import PreferenceAggregator
from .queries import active_events_query, latest_events, popular_events
from .realtime import DELETE, INSERT, UPDATE, Change, ChangeFeed
from .recommender import RuleBasedRecommender
from .tagging import MAX_SUGGESTED_TAGS, rule_based_tags
from .timeutils import format_display, local_to_utc, normalize_dt, utcnow

configure_logging()

MAP_CACHE_CLEANUP_INTERVAL_SECONDS = 10 * 60


def _run_migrations():
    """Run Alembic migrations to latest head. Controlled via settings.auto_run_migrations."""
    try:
        from alembic import command
        from alembic.config import Config
        base_dir = Path(__file__).resolve().parent.parent
        alembic_ini = base_dir / 'alembic.ini'
        if not alembic_ini.exists():
            logging.warning('alembic.ini not found; skipping migrations')
            return
        cfg = Config(str(alembic_ini))
        cfg.set_main_option('script_location', str(base_dir / 'alembic'))
        command.upgrade(cfg, 'head')
        logging.info('Migrations applied to head')
    except Exception:
        logging.exception('Failed to run migrations on startup')


def _check_configuration():
    if not settings.database_url:
        raise RuntimeError('DATABASE_URL is required')
    if not settings.secret_key:
        raise RuntimeError('SECRET_KEY is required')
    if settings.ml_timeout_seconds <= 0:
        raise RuntimeError('ML_TIMEOUT_SECONDS must be positive')


async def _map_cache_cleanup_loop(cache: MapCache) -> None:
    while True:
        await asyncio.sleep(MAP_CACHE_CLEANUP_INTERVAL_SECONDS)
        cache.cleanup_expired()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    _check_configuration()
    if getattr(settings, "auto_run_migrations", False):
        _run_migrations()
    elif settings.auto_create_tables:
        models.Base.metadata.create_all(bind=engine)

    change_feed = ChangeFeed()
    map_cache = MapCache(
        event_ttl_seconds=settings.map_cache_ttl_seconds,
        session_ttl_seconds=settings.map_session_ttl_seconds,
    )
    map_cache.bind(change_feed)
    _app.state.change_feed = change_feed
    _app.state.map_cache = map_cache
    _app.state.ml_client = MLApiClient()

    cleanup_task = asyncio.create_task(_map_cache_cleanup_loop(map_cache))
    try:
        yield
    finally:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
        map_cache.unbind()
        await _app.state.ml_client.aclose()


app = FastAPI(title="LocalLore API", version="1.0.0", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def get_map_cache(request: Request) -> MapCache:
    return request.app.state.map_cache


def get_ml_client(request: Request) -> MLApiClient:
    return request.app.state.ml_client


def get_interaction_tracker(
    db: Session = Depends(get_db), change_feed: ChangeFeed = Depends(get_change_feed)
) -> InteractionTracker:
    return InteractionTracker(db, change_feed)


def get_feed_assembler(db: Session = Depends(get_db), ml_client: MLApiClient = Depends(get_ml_client)) -> FeedAssembler:
    return FeedAssembler(
        db,
        preferences=PreferenceAggregator(db),
        gateway=MLRecommendationGateway(db, ml_client),
        recommender=RuleBasedRecommender(db),
    )


def _serialize_event(event: models.Event) -> schemas.EventResponse:
    item = schemas.EventResponse.model_validate(event)
    return item.model_copy(
        update={
            "start_time": normalize_dt(event.start_time),
            "end_time": normalize_dt(event.end_time),
            "created_at": normalize_dt(event.created_at),
            "start_time_display": format_display(event.start_time),
            "end_time_display": format_display(event.end_time),
        }
    )


def _event_list(events: list[models.Event]) -> dict:
    return {"events": [_serialize_event(event) for event in events]}


def _ensure_valid_page(page: int) -> None:
    if page < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Page must be at least 1.")


def _ensure_time_window(start_time: datetime, end_time: datetime) -> None:
    if normalize_dt(end_time) <= normalize_dt(start_time):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time.")


def _get_event_or_404(db: Session, event_id: str) -> models.Event:
    event = (
        db.query(models.Event)
        .options(joinedload(models.Event.creator))
        .filter(models.Event.id == event_id)
        .first()
    )
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return event


def _ensure_owner(event: models.Event, user: models.User) -> None:
    if event.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the event owner can change this event.")


async def _score_event_quality(ml_client: MLApiClient, event_id: str, title: str, description: str) -> None:
    """Advisory quality check run after the response; failures never reach the caller."""
    try:
        result = await ml_client.score_quality(title, description)
    except MLServiceError as exc:
        log_warning("quality_score_unavailable", event_id=event_id, error=str(exc))
        return

    db = SessionLocal()
    try:
        row = db.query(models.EventQualityScore).filter(models.EventQualityScore.event_id == event_id).first()
        if row is None:
            row = models.EventQualityScore(event_id=event_id)
            db.add(row)
        row.quality_score = result.quality_score
        row.spam_probability = result.spam_probability
        row.is_spam = result.is_spam
        row.scored_at = utcnow()
        db.commit()
        log_event(
            "quality_score_saved",
            event_id=event_id,
            quality_score=result.quality_score,
            is_spam=result.is_spam,
        )
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        log_warning("quality_score_save_failed", event_id=event_id, error=str(exc))
    finally:
        db.close()


@app.get("/")
def read_root():
    return {"message": "Hello from LocalLore API!"}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    code = f"http_{exc.status_code}"
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": code, "message": message}, "detail": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(LocalLoreError)
async def domain_exception_handler(request: Request, exc: LocalLoreError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}, "detail": exc.message},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.getLogger("locallore").exception("unhandled_exception", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


@app.get("/api/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "database": "ok"}
    except Exception:
        raise HTTPException(status_code=503, detail="Database unavailable")


# Discovery feeds


@app.get("/api/discovery/for-you", response_model=schemas.EventListResponse)
async def for_you_events(
    page: int = 1,
    assembler: FeedAssembler = Depends(get_feed_assembler),
    current_user: models.User = Depends(auth.get_current_user),
):
    _ensure_valid_page(page)
    events = await assembler.get_feed(current_user.id, page)
    return _event_list(events)


@app.get("/api/discovery/popular", response_model=schemas.EventListResponse)
def popular_feed(page: int = 1, db: Session = Depends(get_db)):
    _ensure_valid_page(page)
    limit, offset = page_window(page, settings.feed_page_size)
    return _event_list(popular_events(db, limit=limit, offset=offset))


@app.get("/api/discovery/latest", response_model=schemas.EventListResponse)
def latest_feed(page: int = 1, db: Session = Depends(get_db)):
    _ensure_valid_page(page)
    limit, offset = page_window(page, settings.feed_page_size)
    return _event_list(latest_events(db, limit=limit, offset=offset))


# Interactions


@app.post("/api/events/{event_id}/interact", response_model=schemas.InteractionResult)
def record_interaction(
    event_id: str,
    payload: schemas.InteractionRequest,
    tracker: InteractionTracker = Depends(get_interaction_tracker),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    tracker.record(event_id, payload.type, current_user)
    return {"success": True}


@app.delete("/api/events/{event_id}/interact", response_model=schemas.InteractionResult)
def remove_interaction(
    event_id: str,
    payload: schemas.InteractionRequest,
    tracker: InteractionTracker = Depends(get_interaction_tracker),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    tracker.remove(event_id, payload.type, current_user)
    return {"success": True}


@app.get("/api/events/{event_id}/interactions", response_model=schemas.InteractionStatusResponse)
def interaction_status(
    event_id: str,
    tracker: InteractionTracker = Depends(get_interaction_tracker),
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
):
    return tracker.status(event_id, current_user)


@app.get("/api/me/bookmarks", response_model=schemas.EventListResponse)
def list_bookmarks(
    tracker: InteractionTracker = Depends(get_interaction_tracker),
    current_user: models.User = Depends(auth.get_current_user),
):
    return _event_list(tracker.bookmarked_events(current_user))


# Events


@app.post("/api/events", response_model=schemas.EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    event: schemas.EventCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
    change_feed: ChangeFeed = Depends(get_change_feed),
    ml_client: MLApiClient = Depends(get_ml_client),
):
    start_time = local_to_utc(event.start_time)
    end_time = local_to_utc(event.end_time)
    _ensure_time_window(start_time, end_time)

    new_event = models.Event(
        user_id=current_user.id,
        title=event.title,
        description=event.description,
        latitude=event.latitude,
        longitude=event.longitude,
        location=event.location,
        start_time=start_time,
        end_time=end_time,
        category=event.category,
        tags=event.tags,
        contact_info=event.contact_info,
        image_url=event.image_url,
        view_count=0,
        created_at=utcnow(),
    )
    db.add(new_event)
    db.commit()
    db.refresh(new_event)
    log_event("event_created", event_id=new_event.id, owner_id=current_user.id)
    change_feed.publish(Change(table="events", action=INSERT, record={"id": new_event.id, "user_id": current_user.id}))
    background_tasks.add_task(_score_event_quality, ml_client, new_event.id, new_event.title, new_event.description)
    return _serialize_event(new_event)


@app.get("/api/events/{event_id}", response_model=schemas.EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return _serialize_event(_get_event_or_404(db, event_id))


@app.put("/api/events/{event_id}", response_model=schemas.EventResponse)
def update_event(
    event_id: str,
    update: schemas.EventUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
    change_feed: ChangeFeed = Depends(get_change_feed),
    ml_client: MLApiClient = Depends(get_ml_client),
):
    db_event = _get_event_or_404(db, event_id)
    _ensure_owner(db_event, current_user)

    start_time = local_to_utc(update.start_time) if update.start_time is not None else db_event.start_time
    end_time = local_to_utc(update.end_time) if update.end_time is not None else db_event.end_time
    _ensure_time_window(start_time, end_time)

    changes = update.model_dump(exclude_unset=True)
    for field in ("title", "description", "latitude", "longitude", "location", "category", "contact_info", "image_url"):
        if field in changes and changes[field] is not None:
            setattr(db_event, field, changes[field])
    if update.tags is not None:
        db_event.tags = list(dict.fromkeys(tag.strip() for tag in update.tags if tag and tag.strip()))
    db_event.start_time = normalize_dt(start_time)
    db_event.end_time = normalize_dt(end_time)

    db.commit()
    db.refresh(db_event)
    log_event("event_updated", event_id=db_event.id, owner_id=db_event.user_id)
    change_feed.publish(Change(table="events", action=UPDATE, record={"id": db_event.id, "user_id": db_event.user_id}))

    content_changed = update.title is not None or update.description is not None
    if content_changed:
        background_tasks.add_task(_score_event_quality, ml_client, db_event.id, db_event.title, db_event.description)
    return _serialize_event(db_event)


@app.delete("/api/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
    change_feed: ChangeFeed = Depends(get_change_feed),
):
    db_event = _get_event_or_404(db, event_id)
    _ensure_owner(db_event, current_user)
    db.delete(db_event)
    db.commit()
    log_event("event_deleted", event_id=event_id, owner_id=current_user.id)
    change_feed.publish(Change(table="events", action=DELETE, record={"id": event_id, "user_id": current_user.id}))
    return


# Map


@app.get("/api/map/events", response_model=schemas.EventListResponse)
def map_events(
    sw_lng: Optional[float] = None,
    sw_lat: Optional[float] = None,
    ne_lng: Optional[float] = None,
    ne_lat: Optional[float] = None,
    db: Session = Depends(get_db),
    cache: MapCache = Depends(get_map_cache),
):
    corners = (sw_lng, sw_lat, ne_lng, ne_lat)
    if any(value is None for value in corners) and any(value is not None for value in corners):
        raise HTTPException(status_code=400, detail="Bounds need all of sw_lng, sw_lat, ne_lng, ne_lat.")
    bounds = None if sw_lng is None else corners

    def _fetch() -> list[schemas.EventResponse]:
        query = active_events_query(db)
        if bounds is not None:
            query = query.filter(
                models.Event.longitude >= sw_lng,
                models.Event.longitude <= ne_lng,
                models.Event.latitude >= sw_lat,
                models.Event.latitude <= ne_lat,
            )
        events = query.order_by(models.Event.start_time.asc(), models.Event.id.asc()).all()
        return [_serialize_event(event) for event in events]

    return {"events": cache.preload(_fetch, bounds)}


@app.get("/api/map/session/{session_id}", response_model=schemas.MapSessionState)
def get_map_session(session_id: str, cache: MapCache = Depends(get_map_cache)):
    state = cache.get_session_state(session_id)
    if state is None:
        raise HTTPException(status_code=404, detail="No saved map state")
    return state


@app.put("/api/map/session/{session_id}", response_model=schemas.MapSessionState)
def save_map_session(session_id: str, state: schemas.MapSessionState, cache: MapCache = Depends(get_map_cache)):
    cache.set_session_state(session_id, state.model_dump())
    return state


# Profile


@app.get("/api/tags", response_model=schemas.TagListResponse)
def get_all_tags(db: Session = Depends(get_db)):
    tags = (
        db.query(models.PredefinedTag)
        .filter(models.PredefinedTag.is_active.is_(True))
        .order_by(models.PredefinedTag.tag)
        .all()
    )
    return {"items": tags}


@app.get("/api/me/preferences", response_model=schemas.PreferencesResponse)
def get_preferences(current_user: models.User = Depends(auth.get_current_user)):
    return {"preferences": list(current_user.preferences or [])}


@app.put("/api/me/preferences", response_model=schemas.PreferencesResponse)
def update_preferences(
    payload: schemas.PreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
    change_feed: ChangeFeed = Depends(get_change_feed),
):
    current_user.preferences = list(payload.preferences)
    db.commit()
    db.refresh(current_user)
    log_event("preferences_updated", user_id=current_user.id, count=len(payload.preferences))
    change_feed.publish(Change(table="users", action=UPDATE, record={"id": current_user.id}))
    return {"preferences": list(current_user.preferences or [])}


# ML passthroughs


@app.post("/api/ml/tag-event", response_model=schemas.TagEventResponse)
async def tag_event(payload: schemas.TagEventRequest, ml_client: MLApiClient = Depends(get_ml_client)):
    try:
        result = await ml_client.tag_event(payload.title, payload.description)
    except MLServiceError as exc:
        log_warning("auto_tag_fallback", reason=exc.code, error=str(exc))
        return rule_based_tags(payload.title, payload.description)
    if not result.tags:
        log_event("auto_tag_fallback", reason="empty")
        return rule_based_tags(payload.title, payload.description)
    tags = result.tags[:MAX_SUGGESTED_TAGS]
    return schemas.TagEventResponse(
        tags=tags,
        confidence_scores={tag: score for tag, score in result.confidence_scores.items() if tag in tags},
        source="ml",
    )


@app.post("/api/ml/score-quality", response_model=schemas.QualityScoreResponse)
async def score_quality(payload: schemas.TagEventRequest, ml_client: MLApiClient = Depends(get_ml_client)):
    try:
        return await ml_client.score_quality(payload.title, payload.description)
    except MLServiceError as exc:
        log_warning("quality_check_unavailable", error=str(exc))
        raise MLServiceUnavailable("AI quality check temporarily unavailable") from exc


@app.get("/api/ml/health", response_model=schemas.MLHealthResponse)
async def ml_health(ml_client: MLApiClient = Depends(get_ml_client)):
    return {"healthy": await ml_client.check_health()}
