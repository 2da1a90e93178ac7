from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Query, Session, joinedload

from . import models
from .timeutils import utcnow


def active_events_query(db: Session, now: Optional[datetime] = None, base_query: Optional[Query] = None) -> Query:
    """Events whose end time is still in the future, with their creator eagerly loaded."""
    now = now or utcnow()
    if base_query is None:
        base_query = db.query(models.Event)
    return base_query.options(joinedload(models.Event.creator)).filter(models.Event.end_time > now)


def exclude_ids(query: Query, event_ids: Iterable[str]) -> Query:
    ids = sorted(set(event_ids))
    if ids:
        query = query.filter(~models.Event.id.in_(ids))
    return query


def popular_events(
    db: Session,
    *,
    limit: int,
    offset: int = 0,
    exclude_event_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> list[models.Event]:
    query = exclude_ids(active_events_query(db, now), exclude_event_ids)
    query = query.order_by(
        models.Event.view_count.desc(),
        models.Event.created_at.desc(),
        models.Event.id.asc(),
    )
    return query.offset(offset).limit(limit).all()


def latest_events(db: Session, *, limit: int, offset: int = 0, now: Optional[datetime] = None) -> list[models.Event]:
    query = active_events_query(db, now).order_by(models.Event.created_at.desc(), models.Event.id.asc())
    return query.offset(offset).limit(limit).all()
