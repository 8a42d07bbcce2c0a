"""
Generate-then-store pipeline steps.

Generation and the inserts that follow are separate steps with their own
commits. Two concurrent calls for the same trend may both produce a post.
"""

from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from socialbot.core import repositories as repo
from socialbot.core.logging import get_logger
from socialbot.core.models import Autoreply, Post, Trend
from socialbot.core.time import minutes_from_now

from .orchestrator import GenerationResult
from .posts import AutoreplyGenerator, PostGenerator
from .trends import TrendGenerator

logger = get_logger(__name__)


async def generate_and_store_trends(
    session: AsyncSession,
    generator: TrendGenerator,
) -> Tuple[List[Trend], GenerationResult]:
    """
    Generate a trend batch and persist the topics not already stored.

    Returns:
        Tuple of (newly stored trends, generation result)
    """
    result = await generator.generate()

    trends = await repo.create_trends(
        session,
        [{"topic": item.topic, "source": item.source or result.source} for item in result.value],
    )

    logger.info(
        f"Generated {len(trends)} trends via {result.source}",
        extra={"source": result.source, "used_fallback": result.used_fallback}
    )
    return trends, result


async def generate_and_store_post(
    session: AsyncSession,
    generator: PostGenerator,
    topic: str,
    trend_id=None,
    schedule_delay_minutes: Optional[int] = None,
) -> Post:
    """
    Generate a post for a topic, store it and mark its trend used.

    Args:
        session: Database session
        generator: Configured post generator
        topic: Topic text to write about
        trend_id: Originating trend, marked used after the insert
        schedule_delay_minutes: When set, schedule the post this far ahead

    Returns:
        The stored Post
    """
    draft = await generator.generate(topic)

    scheduled_time = None
    if schedule_delay_minutes is not None:
        scheduled_time = minutes_from_now(schedule_delay_minutes)

    post = await repo.create_post(
        session,
        content=draft.content,
        image_url=draft.image_url,
        trend_id=trend_id,
        scheduled_time=scheduled_time,
    )

    if trend_id:
        await repo.mark_trend_used(session, trend_id)

    logger.info(
        f"Stored post {post.id} for '{topic}' via {draft.source}",
        extra={"source": draft.source, "used_fallback": draft.used_fallback}
    )
    return post


async def generate_and_store_autoreply(
    session: AsyncSession,
    generator: AutoreplyGenerator,
    comment: str,
    post_id=None,
) -> Autoreply:
    result = await generator.generate(comment)
    return await repo.create_autoreply(session, comment=comment, reply=result.value, post_id=post_id)
