"""Repository layer for database operations.

Provides async CRUD operations for trends, posts, the settings row and
autoreplies. Every function takes the session as its first argument and
commits its own work; nothing here spans more than one entity.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from socialbot.core.errors import NotFoundError
from socialbot.core.logging import get_logger
from socialbot.core.models import Autoreply, AutomationSettings, Post, Trend
from socialbot.core.time import to_utc, utc_now

logger = get_logger(__name__)

IdLike = Union[uuid.UUID, str]

POST_UPDATABLE_FIELDS = ("content", "scheduled_time")
SETTINGS_UPDATABLE_FIELDS = (
    "facebook_page_id",
    "facebook_page_access_token",
    "auto_post_enabled",
    "max_posts_per_day",
)


def as_uuid(value: IdLike, entity: str = "Record") -> uuid.UUID:
    """Coerce an identifier; malformed ids are reported as not found."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise NotFoundError(f"{entity} not found")


# =============================================================================
# Trends
# =============================================================================

async def list_trends(session: AsyncSession) -> List[Trend]:
    """Get all trends, newest first."""
    stmt = select(Trend).order_by(Trend.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_trend(session: AsyncSession, trend_id: IdLike) -> Optional[Trend]:
    return await session.get(Trend, as_uuid(trend_id, "Trend"))


async def create_trend(session: AsyncSession, topic: str, source: str = "manual") -> Trend:
    """
    Insert a single trend.

    Args:
        session: Database session
        topic: Non-empty topic text
        source: Provider or method that produced the topic

    Returns:
        The stored Trend with generated id and created_at
    """
    topic = (topic or "").strip()
    if not topic:
        raise ValueError("Trend topic must not be empty")

    trend = Trend(topic=topic, source=source, used=False)
    session.add(trend)
    await session.commit()
    await session.refresh(trend)

    logger.debug(f"Created trend {trend.id} ({source}): {topic}")
    return trend


async def create_trends(session: AsyncSession, items: List[Dict[str, str]]) -> List[Trend]:
    """
    Insert the new topics of a batch in one commit.

    Topics already stored, or repeated within the batch, are skipped;
    comparison is case-insensitive.

    Args:
        session: Database session
        items: Records with ``topic`` and ``source`` keys

    Returns:
        The trends actually inserted, in input order
    """
    candidates = {}
    for item in items:
        topic = (item.get("topic") or "").strip()
        if topic and topic.lower() not in candidates:
            candidates[topic.lower()] = (topic, item["source"])
    if not candidates:
        return []

    stmt = select(func.lower(Trend.topic)).where(func.lower(Trend.topic).in_(list(candidates)))
    existing = set((await session.execute(stmt)).scalars().all())

    trends = [
        Trend(topic=topic, source=source, used=False)
        for key, (topic, source) in candidates.items()
        if key not in existing
    ]
    skipped = len(candidates) - len(trends)
    if skipped:
        logger.info(f"Skipped {skipped} trends that already exist")
    if not trends:
        return []

    session.add_all(trends)
    await session.commit()
    for trend in trends:
        await session.refresh(trend)

    logger.info(f"Saved {len(trends)} trends")
    return trends


async def mark_trend_used(session: AsyncSession, trend_id: IdLike) -> bool:
    """
    Set the ``used`` flag on a trend.

    Idempotent: marking an already used trend is a no-op that still
    reports success.

    Returns:
        True if the trend exists, False otherwise
    """
    stmt = (
        update(Trend)
        .where(Trend.id == as_uuid(trend_id, "Trend"))
        .values(used=True)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount > 0


# =============================================================================
# Posts
# =============================================================================

async def list_posts(session: AsyncSession) -> List[Post]:
    """Get all posts, newest first."""
    stmt = select(Post).order_by(Post.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_post(session: AsyncSession, post_id: IdLike) -> Optional[Post]:
    return await session.get(Post, as_uuid(post_id, "Post"))


async def get_post_or_404(session: AsyncSession, post_id: IdLike) -> Post:
    post = await get_post(session, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return post


async def create_post(
    session: AsyncSession,
    content: str,
    image_url: Optional[str] = None,
    trend_id: Optional[IdLike] = None,
    scheduled_time: Optional[datetime] = None,
) -> Post:
    """
    Insert a generated post.

    Args:
        session: Database session
        content: Post body, stored verbatim
        image_url: External or data: URL, or None for text-only posts
        trend_id: Originating trend, if any
        scheduled_time: Deferred publishing time

    Returns:
        The stored Post with generated id and created_at
    """
    if not content or not content.strip():
        raise ValueError("Post content must not be empty")

    post = Post(
        content=content,
        image_url=image_url,
        trend_id=as_uuid(trend_id, "Trend") if trend_id else None,
        scheduled_time=to_utc(scheduled_time),
        posted=False,
        engagement_likes=0,
        engagement_comments=0,
    )
    session.add(post)
    await session.commit()
    await session.refresh(post)

    logger.info(
        f"Created post {post.id}",
        extra={"trend_id": str(post.trend_id) if post.trend_id else None, "has_image": image_url is not None}
    )
    return post


async def update_post(session: AsyncSession, post_id: IdLike, changes: Dict[str, Any]) -> Post:
    """
    Apply a partial update to a post.

    Only keys present in ``changes`` are written; absent keys keep their
    stored value.
    """
    post = await get_post_or_404(session, post_id)

    for field, value in changes.items():
        if field not in POST_UPDATABLE_FIELDS:
            continue
        if field == "scheduled_time":
            value = to_utc(value)
        setattr(post, field, value)

    await session.commit()
    await session.refresh(post)
    return post


async def delete_post(session: AsyncSession, post_id: IdLike) -> bool:
    stmt = delete(Post).where(Post.id == as_uuid(post_id, "Post"))
    result = await session.execute(stmt)
    await session.commit()

    deleted = result.rowcount > 0
    if deleted:
        logger.info(f"Deleted post {post_id}")
    return deleted


async def mark_post_published(session: AsyncSession, post_id: IdLike, facebook_post_id: str) -> None:
    stmt = (
        update(Post)
        .where(Post.id == as_uuid(post_id, "Post"))
        .values(posted=True, facebook_post_id=facebook_post_id)
    )
    await session.execute(stmt)
    await session.commit()


async def update_post_engagement(session: AsyncSession, post_id: IdLike, likes: int, comments: int) -> None:
    stmt = (
        update(Post)
        .where(Post.id == as_uuid(post_id, "Post"))
        .values(engagement_likes=likes, engagement_comments=comments)
    )
    await session.execute(stmt)
    await session.commit()


async def count_posts_published_since(session: AsyncSession, since: datetime) -> int:
    """Count published posts created at or after ``since``."""
    stmt = (
        select(func.count())
        .select_from(Post)
        .where(Post.posted.is_(True), Post.created_at >= to_utc(since))
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_due_posts(session: AsyncSession, now: datetime, limit: int) -> List[Post]:
    """Unposted posts whose scheduled time has passed, oldest schedule first."""
    if limit <= 0:
        return []

    stmt = (
        select(Post)
        .where(
            Post.posted.is_(False),
            Post.scheduled_time.is_not(None),
            Post.scheduled_time <= to_utc(now),
        )
        .order_by(Post.scheduled_time.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# =============================================================================
# Settings (single row)
# =============================================================================

async def get_settings_row(session: AsyncSession) -> Optional[AutomationSettings]:
    """Return the settings row, or None when it has never been written."""
    stmt = select(AutomationSettings).order_by(AutomationSettings.created_at).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def upsert_settings(session: AsyncSession, updates: Dict[str, Any]) -> AutomationSettings:
    """
    Partially update the settings row, creating it first if missing.

    Args:
        session: Database session
        updates: Field values to write; unknown keys are ignored

    Returns:
        The stored settings row
    """
    now = utc_now()
    row = await get_settings_row(session)
    if row is None:
        row = AutomationSettings(created_at=now)
        session.add(row)
        logger.info("Creating settings row")

    for field, value in updates.items():
        if field in SETTINGS_UPDATABLE_FIELDS:
            setattr(row, field, value)
    row.updated_at = now

    await session.commit()
    await session.refresh(row)
    return row


# =============================================================================
# Autoreplies
# =============================================================================

async def create_autoreply(
    session: AsyncSession,
    comment: str,
    reply: str,
    post_id: Optional[IdLike] = None,
) -> Autoreply:
    autoreply = Autoreply(
        comment=comment,
        reply=reply,
        post_id=as_uuid(post_id, "Post") if post_id else None,
    )
    session.add(autoreply)
    await session.commit()
    await session.refresh(autoreply)
    return autoreply
