import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import relationship

from .database import Base
from .timeutils import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class InteractionType(str, enum.Enum):
    view = "view"
    click = "click"
    bookmark = "bookmark"
    share = "share"
    attend = "attend"


REMOVABLE_INTERACTION_TYPES = {InteractionType.bookmark, InteractionType.attend}


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    graduation_year = Column(Integer, nullable=True)
    preferences = Column(JSON, nullable=False, default=list)
    is_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    events = relationship("Event", back_populates="creator", cascade="all, delete-orphan")
    interactions = relationship("UserEventInteraction", back_populates="user", cascade="all, delete-orphan")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    location = Column(String(255), nullable=True)
    start_time = Column(TIMESTAMP(timezone=True), nullable=False)
    end_time = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    category = Column(String(100), nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)
    contact_info = Column(String(255), nullable=True)
    image_url = Column(String(500), nullable=True)
    view_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    creator = relationship("User", back_populates="events")
    interactions = relationship("UserEventInteraction", back_populates="event", cascade="all, delete-orphan")
    quality_score = relationship(
        "EventQualityScore", back_populates="event", uselist=False, cascade="all, delete-orphan"
    )


class UserEventInteraction(Base):
    __tablename__ = "user_event_interactions"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", "interaction_type", name="uq_user_event_interaction"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    interaction_type = Column(String(20), nullable=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    user = relationship("User", back_populates="interactions")
    event = relationship("Event", back_populates="interactions")


class PredefinedTag(Base):
    __tablename__ = "predefined_tags"

    id = Column(Integer, primary_key=True, index=True)
    tag = Column(String(100), unique=True, nullable=False)
    tag_group = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())


class EventQualityScore(Base):
    __tablename__ = "event_quality_scores"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, unique=True)
    quality_score = Column(Float, nullable=False)
    spam_probability = Column(Float, nullable=False)
    is_spam = Column(Boolean, nullable=False, default=False, server_default=false())
    scored_at = Column(TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    event = relationship("Event", back_populates="quality_score")
