"""Database models for SocialBot."""
import uuid

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
)
from sqlalchemy.orm import mapped_column

from .db import Base
from .time import utc_now


class Trend(Base):
    """Topics considered currently relevant; consumed once to produce a post."""
    __tablename__ = "trends"

    id = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    topic = mapped_column(Text, nullable=False)
    source = mapped_column(String(64), nullable=False, default="manual")  # provider name | manual | RSS | fallback
    used = mapped_column(Boolean, nullable=False, default=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)


class Post(Base):
    """Generated post content, optionally published to the Facebook Page."""
    __tablename__ = "posts"

    id = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trend_id = mapped_column(ForeignKey("trends.id", ondelete="SET NULL"), nullable=True, index=True)
    content = mapped_column(Text, nullable=False)
    image_url = mapped_column(Text, nullable=True)  # external URL or data: URL
    scheduled_time = mapped_column(DateTime(timezone=True), nullable=True)
    posted = mapped_column(Boolean, nullable=False, default=False)
    facebook_post_id = mapped_column(String(128), nullable=True)
    engagement_likes = mapped_column(Integer, nullable=False, default=0)
    engagement_comments = mapped_column(Integer, nullable=False, default=0)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)


class AutomationSettings(Base):
    """The single settings row: Facebook credentials and automation flags."""
    __tablename__ = "settings"

    id = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    facebook_page_id = mapped_column(String(128), nullable=True, default="")
    facebook_page_access_token = mapped_column(Text, nullable=True, default="")
    auto_post_enabled = mapped_column(Boolean, nullable=False, default=False)
    max_posts_per_day = mapped_column(Integer, nullable=False, default=3)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)


class Autoreply(Base):
    """Generated replies to comments on published posts."""
    __tablename__ = "autoreplies"

    id = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id = mapped_column(ForeignKey("posts.id", ondelete="SET NULL"), nullable=True, index=True)
    comment = mapped_column(Text, nullable=False)
    reply = mapped_column(Text, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)


# Due-post lookup for auto publishing
Index('idx_posts_posted_scheduled', Post.posted, Post.scheduled_time)
