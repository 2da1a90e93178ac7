"""Recording of user actions against events.

View counting and interaction logging are separate transactions: a failed row write
never rolls back a view increment that already committed.
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import (
    AuthenticationRequired,
    DuplicateInteraction,
    EventNotFound,
    InvalidInteractionType,
    StorageWriteFailure,
)
from .logging_utils import log_event, log_warning
from .queries import active_events_query
from .realtime import DELETE, INSERT, UPDATE, Change, ChangeFeed
from .timeutils import utcnow

INTERACTIONS_TABLE = models.UserEventInteraction.__tablename__
EVENTS_TABLE = models.Event.__tablename__


def parse_interaction_type(value: object, allowed=None) -> models.InteractionType:
    allowed = allowed or set(models.InteractionType)
    try:
        interaction_type = models.InteractionType(value)
    except ValueError:
        raise InvalidInteractionType(f"Invalid interaction type: {value!r}")
    if interaction_type not in allowed:
        raise InvalidInteractionType(f"Interaction type {interaction_type.value!r} cannot be used here")
    return interaction_type


class InteractionTracker:
    def __init__(self, db: Session, change_feed: ChangeFeed):
        self.db = db
        self.change_feed = change_feed

    def record(self, event_id: str, interaction_type: object, actor: Optional[models.User]) -> None:
        itype = parse_interaction_type(interaction_type)
        self._ensure_event_exists(event_id)

        if itype is models.InteractionType.view:
            self._increment_view_count(event_id)
            if actor is None:
                log_event("view_recorded_anonymous", event_id=event_id)
                return
        elif actor is None:
            raise AuthenticationRequired()

        try:
            self._insert_interaction(actor.id, event_id, itype)
        except DuplicateInteraction:
            log_event("interaction_duplicate_ignored", event_id=event_id, user_id=actor.id, interaction_type=itype.value)

    def remove(self, event_id: str, interaction_type: object, actor: Optional[models.User]) -> bool:
        itype = parse_interaction_type(interaction_type, allowed=models.REMOVABLE_INTERACTION_TYPES)
        if actor is None:
            raise AuthenticationRequired()

        try:
            deleted = (
                self.db.query(models.UserEventInteraction)
                .filter(
                    models.UserEventInteraction.user_id == actor.id,
                    models.UserEventInteraction.event_id == event_id,
                    models.UserEventInteraction.interaction_type == itype.value,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_warning(
                "interaction_delete_failed",
                event_id=event_id,
                user_id=actor.id,
                interaction_type=itype.value,
                error=str(exc),
            )
            raise StorageWriteFailure("Failed to delete interaction") from exc

        log_event("interaction_removed", event_id=event_id, user_id=actor.id, interaction_type=itype.value, deleted=deleted)
        if deleted:
            self._publish(INTERACTIONS_TABLE, DELETE, user_id=actor.id, event_id=event_id, interaction_type=itype.value)
        return bool(deleted)

    def attendee_count(self, event_id: str) -> int:
        return (
            self.db.query(func.count(models.UserEventInteraction.id))
            .filter(
                models.UserEventInteraction.event_id == event_id,
                models.UserEventInteraction.interaction_type == models.InteractionType.attend.value,
            )
            .scalar()
        ) or 0

    def status(self, event_id: str, actor: Optional[models.User]) -> dict:
        self._ensure_event_exists(event_id)
        flags: set[str] = set()
        if actor is not None:
            flags = {
                row[0]
                for row in self.db.query(models.UserEventInteraction.interaction_type)
                .filter(
                    models.UserEventInteraction.user_id == actor.id,
                    models.UserEventInteraction.event_id == event_id,
                    models.UserEventInteraction.interaction_type.in_(
                        [t.value for t in models.REMOVABLE_INTERACTION_TYPES]
                    ),
                )
                .all()
            }
        return {
            "event_id": event_id,
            "attendee_count": self.attendee_count(event_id),
            "is_attending": models.InteractionType.attend.value in flags,
            "is_bookmarked": models.InteractionType.bookmark.value in flags,
        }

    def bookmarked_events(self, actor: models.User) -> list[models.Event]:
        base_query = self.db.query(models.Event).join(
            models.UserEventInteraction, models.UserEventInteraction.event_id == models.Event.id
        ).filter(
            models.UserEventInteraction.user_id == actor.id,
            models.UserEventInteraction.interaction_type == models.InteractionType.bookmark.value,
        )
        query = active_events_query(self.db, base_query=base_query)
        return query.order_by(models.Event.start_time.asc(), models.Event.id.asc()).all()

    def _ensure_event_exists(self, event_id: str) -> None:
        exists = self.db.query(models.Event.id).filter(models.Event.id == event_id).first()
        if not exists:
            raise EventNotFound()

    def _increment_view_count(self, event_id: str) -> bool:
        try:
            self.db.query(models.Event).filter(models.Event.id == event_id).update(
                {models.Event.view_count: models.Event.view_count + 1},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_warning("view_count_increment_failed", event_id=event_id, error=str(exc))
            return False
        self._publish(EVENTS_TABLE, UPDATE, id=event_id, field="view_count")
        return True

    def _insert_interaction(self, user_id: str, event_id: str, itype: models.InteractionType) -> None:
        self.db.add(
            models.UserEventInteraction(
                user_id=user_id,
                event_id=event_id,
                interaction_type=itype.value,
                created_at=utcnow(),
            )
        )
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if self._interaction_exists(user_id, event_id, itype):
                raise DuplicateInteraction() from exc
            log_warning(
                "interaction_write_failed",
                event_id=event_id,
                user_id=user_id,
                interaction_type=itype.value,
                error=str(exc),
            )
            raise StorageWriteFailure() from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_warning(
                "interaction_write_failed",
                event_id=event_id,
                user_id=user_id,
                interaction_type=itype.value,
                error=str(exc),
            )
            raise StorageWriteFailure() from exc

        log_event("interaction_recorded", event_id=event_id, user_id=user_id, interaction_type=itype.value)
        self._publish(INTERACTIONS_TABLE, INSERT, user_id=user_id, event_id=event_id, interaction_type=itype.value)

    def _interaction_exists(self, user_id: str, event_id: str, itype: models.InteractionType) -> bool:
        return (
            self.db.query(models.UserEventInteraction.id)
            .filter(
                models.UserEventInteraction.user_id == user_id,
                models.UserEventInteraction.event_id == event_id,
                models.UserEventInteraction.interaction_type == itype.value,
            )
            .first()
            is not None
        )

    def _publish(self, table: str, action: str, **record) -> None:
        self.change_feed.publish(Change(table=table, action=action, record=record))
