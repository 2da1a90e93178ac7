from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CreatorResponse(BaseModel):
    display_name: str
    graduation_year: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class EventResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    latitude: float
    longitude: float
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    start_time_display: str = ""
    end_time_display: str = ""
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    contact_info: Optional[str] = None
    image_url: Optional[str] = None
    view_count: int = 0
    created_at: datetime
    creator: Optional[CreatorResponse] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, value):
        return list(value or [])


class EventListResponse(BaseModel):
    events: List[EventResponse]


class EventBase(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(default="", max_length=5000)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    location: Optional[str] = Field(default=None, max_length=255)
    start_time: datetime
    end_time: datetime
    category: Optional[str] = Field(default="Other", max_length=100)
    tags: List[str] = Field(default_factory=list)
    contact_info: Optional[str] = Field(default=None, max_length=255)
    image_url: Optional[str] = Field(default=None, max_length=500)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(tag.strip() for tag in value if tag and tag.strip()))


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    contact_info: Optional[str] = None
    image_url: Optional[str] = None


class InteractionRequest(BaseModel):
    # Kept as a plain string so unknown or missing types are rejected by the tracker with a 400.
    type: Optional[str] = None


class InteractionResult(BaseModel):
    success: bool = True


class InteractionStatusResponse(BaseModel):
    event_id: str
    attendee_count: int
    is_attending: bool = False
    is_bookmarked: bool = False


class PreferencesResponse(BaseModel):
    preferences: List[str]


class PreferencesUpdate(BaseModel):
    preferences: List[str] = Field(default_factory=list, max_length=50)

    @field_validator("preferences")
    @classmethod
    def clean_preferences(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(item.strip() for item in value if item and item.strip()))


class TagResponse(BaseModel):
    id: int
    tag: str
    tag_group: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TagListResponse(BaseModel):
    items: List[TagResponse]


# Payloads exchanged with the ML service.


class EventProjection(BaseModel):
    id: str
    title: str
    description: str
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    latitude: float
    longitude: float
    start_time: datetime
    end_time: datetime
    user_id: str

    model_config = ConfigDict(from_attributes=True)

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, value):
        return list(value or [])


class InteractionRow(BaseModel):
    user_id: str
    event_id: str
    interaction_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserProjection(BaseModel):
    id: str
    preferences: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("preferences", mode="before")
    @classmethod
    def default_preferences(cls, value):
        return list(value or [])


class RecommendEventsRequest(BaseModel):
    user_id: str
    preferences: List[str]
    limit: int
    events: List[EventProjection]
    interactions: List[InteractionRow]
    users: List[UserProjection]


class Recommendation(BaseModel):
    event_id: str
    score: Optional[float] = None


class TagEventRequest(BaseModel):
    title: str = Field(default="", max_length=255)
    description: str = Field(default="", max_length=5000)


class TagEventResponse(BaseModel):
    tags: List[str] = Field(default_factory=list)
    confidence_scores: Dict[str, float] = Field(default_factory=dict)
    source: Literal["ml", "rules"] = "ml"


class QualityScoreResponse(BaseModel):
    quality_score: float
    spam_probability: float
    is_spam: bool
    is_high_quality: bool = False

    @model_validator(mode="after")
    def derive_high_quality(self):
        self.is_high_quality = self.quality_score > 0.7 and not self.is_spam
        return self


class MLHealthResponse(BaseModel):
    healthy: bool


class MapSessionState(BaseModel):
    center_lng: float = Field(..., ge=-180, le=180)
    center_lat: float = Field(..., ge=-90, le=90)
    zoom: float = Field(default=15.0, ge=0, le=24)


class TokenData(BaseModel):
    user_id: Optional[str] = None
    email: Optional[str] = None
