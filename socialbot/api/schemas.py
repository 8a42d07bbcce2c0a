"""Request and response models for the HTTP API.

Stored entities are returned with their column names; generation and
publishing requests use camelCase keys.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, validator

from socialbot.core.time import to_utc


# =============================================================================
# Entities
# =============================================================================

class TrendOut(BaseModel):
    id: uuid.UUID
    topic: str
    source: str
    used: bool
    created_at: datetime

    class Config:
        from_attributes = True

    @validator("created_at")
    def ensure_utc(cls, v):
        return to_utc(v)


class PostOut(BaseModel):
    id: uuid.UUID
    trend_id: Optional[uuid.UUID] = None
    content: str
    image_url: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    posted: bool
    facebook_post_id: Optional[str] = None
    engagement_likes: int
    engagement_comments: int
    created_at: datetime

    class Config:
        from_attributes = True

    @validator("created_at", "scheduled_time")
    def ensure_utc(cls, v):
        return to_utc(v)


class SettingsOut(BaseModel):
    id: uuid.UUID
    facebook_page_id: Optional[str] = None
    facebook_page_access_token: Optional[str] = None
    auto_post_enabled: bool
    max_posts_per_day: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @validator("created_at", "updated_at")
    def ensure_utc(cls, v):
        return to_utc(v)


class AutoreplyOut(BaseModel):
    id: uuid.UUID
    post_id: Optional[uuid.UUID] = None
    comment: str
    reply: str
    created_at: datetime

    class Config:
        from_attributes = True

    @validator("created_at")
    def ensure_utc(cls, v):
        return to_utc(v)


class TrendBatchOut(BaseModel):
    trends: List[TrendOut]
    source: str
    count: int  # newly inserted only
    message: Optional[str] = None


# =============================================================================
# Requests
# =============================================================================

class TrendCreate(BaseModel):
    topic: Optional[str] = Field(None, description="Topic text")


class PostUpdate(BaseModel):
    """Partial post update; keys left out of the body are not touched."""
    content: Optional[str] = None
    scheduled_time: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("scheduled_time", "scheduledTime"),
    )

    @validator("content")
    def validate_content(cls, v):
        if v is None or not v.strip():
            raise ValueError("content must not be empty")
        return v

    @validator("scheduled_time")
    def validate_scheduled_time(cls, v):
        return to_utc(v)


class SettingsUpdate(BaseModel):
    facebook_page_id: Optional[str] = None
    facebook_page_access_token: Optional[str] = None
    auto_post_enabled: Optional[bool] = None
    max_posts_per_day: Optional[int] = Field(None, ge=0)

    @validator("auto_post_enabled", "max_posts_per_day")
    def reject_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


class GeneratePostRequest(BaseModel):
    trend_id: Optional[str] = Field(None, validation_alias=AliasChoices("trendId", "trend_id"))
    topic: Optional[str] = None


class PostToFacebookRequest(BaseModel):
    post_id: Optional[str] = Field(None, validation_alias=AliasChoices("postId", "post_id"))


class FetchEngagementRequest(BaseModel):
    post_id: Optional[str] = Field(None, validation_alias=AliasChoices("postId", "post_id"))
    facebook_post_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("facebookPostId", "facebook_post_id"),
    )


class ConnectionCheckRequest(BaseModel):
    page_id: Optional[str] = Field(None, validation_alias=AliasChoices("pageId", "page_id"))
    access_token: Optional[str] = Field(None, validation_alias=AliasChoices("accessToken", "access_token"))


class GenerateAutoreplyRequest(BaseModel):
    comment: Optional[str] = None
    post_id: Optional[str] = Field(None, validation_alias=AliasChoices("postId", "post_id"))
