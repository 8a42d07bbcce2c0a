"""
Publishing workflows that combine the database with the Graph API.

Credentials come from the settings row when it holds both values, else from
the ``FACEBOOK_PAGE_ID`` / ``FACEBOOK_PAGE_ACCESS_TOKEN`` environment.
"""

from typing import Any, Dict, List, NamedTuple, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from socialbot.core import repositories as repo
from socialbot.core.errors import (
    AlreadyPostedError,
    ConfigurationError,
    FacebookAPIError,
    MissingFieldError,
    SocialBotError,
)
from socialbot.core.logging import get_logger
from socialbot.core.settings import Settings
from socialbot.core.time import start_of_day_utc, utc_now

from .facebook import Engagement, FacebookGraphClient

logger = get_logger(__name__)


class FacebookCredentials(NamedTuple):
    page_id: str
    access_token: str
    origin: str  # "settings" | "environment"


async def resolve_facebook_credentials(session: AsyncSession, settings: Settings) -> Optional[FacebookCredentials]:
    row = await repo.get_settings_row(session)
    if row is not None and row.facebook_page_id and row.facebook_page_access_token:
        return FacebookCredentials(row.facebook_page_id, row.facebook_page_access_token, "settings")

    if settings.facebook_page_id and settings.facebook_page_access_token:
        return FacebookCredentials(settings.facebook_page_id, settings.facebook_page_access_token, "environment")

    return None


def build_graph_client(
    http_client: httpx.AsyncClient,
    settings: Settings,
    credentials: FacebookCredentials,
) -> FacebookGraphClient:
    return FacebookGraphClient(
        http_client=http_client,
        page_id=credentials.page_id,
        access_token=credentials.access_token,
        graph_url=settings.facebook_graph_url,
        timeout=settings.graph_timeout_seconds,
    )


async def _require_graph_client(
    session: AsyncSession,
    http_client: httpx.AsyncClient,
    settings: Settings,
) -> FacebookGraphClient:
    credentials = await resolve_facebook_credentials(session, settings)
    if credentials is None:
        raise ConfigurationError("Facebook credentials not configured")
    return build_graph_client(http_client, settings, credentials)


async def publish_post(
    session: AsyncSession,
    post_id,
    http_client: httpx.AsyncClient,
    settings: Settings,
) -> str:
    """
    Publish a stored post to the page.

    The ``posted`` flag is checked before credentials are resolved, so an
    already published post never reaches the Graph API.

    Returns:
        The Facebook post id
    """
    post = await repo.get_post_or_404(session, post_id)
    if post.posted:
        raise AlreadyPostedError()

    client = await _require_graph_client(session, http_client, settings)
    fb_post_id = await client.publish(post.content, post.image_url)
    await repo.mark_post_published(session, post.id, fb_post_id)
    return fb_post_id


async def refresh_engagement(
    session: AsyncSession,
    post_id,
    http_client: httpx.AsyncClient,
    settings: Settings,
    facebook_post_id: Optional[str] = None,
) -> Engagement:
    """Read likes/comments from the Graph API and store them on the post."""
    post = await repo.get_post_or_404(session, post_id)

    fb_post_id = facebook_post_id or post.facebook_post_id
    if not fb_post_id:
        raise MissingFieldError("Missing facebookPostId")

    client = await _require_graph_client(session, http_client, settings)
    engagement = await client.fetch_engagement(fb_post_id)
    await repo.update_post_engagement(session, post.id, engagement.likes, engagement.comments)
    return engagement


async def verify_page_connection(
    http_client: httpx.AsyncClient,
    settings: Settings,
    page_id: str,
    access_token: str,
) -> Dict[str, Any]:
    """
    Validate page credentials by reading the page.

    A Graph API rejection is reported as ``success: false``; a transport
    failure propagates.
    """
    client = build_graph_client(http_client, settings, FacebookCredentials(page_id, access_token, "request"))
    try:
        page = await client.get_page()
    except FacebookAPIError as e:
        if e.status_code is None:
            raise
        return {"success": False, "error": str(e)}

    return {"success": True, "pageName": page.name, "pageId": page.id}


async def run_auto_post(
    session: AsyncSession,
    http_client: httpx.AsyncClient,
    settings: Settings,
) -> Dict[str, Any]:
    """
    Publish due scheduled posts within the daily cap.

    Returns:
        ``{"message": ...}`` when nothing was attempted, otherwise
        ``{"results": [...]}`` with one entry per attempted post
    """
    row = await repo.get_settings_row(session)
    if row is None or not row.auto_post_enabled:
        return {"message": "Auto post disabled"}

    credentials = await resolve_facebook_credentials(session, settings)
    if credentials is None:
        return {"message": "Facebook not configured"}

    posted_today = await repo.count_posts_published_since(session, start_of_day_utc())
    remaining = row.max_posts_per_day - posted_today
    if remaining <= 0:
        return {"message": "Daily limit reached"}

    due_posts = await repo.list_due_posts(session, utc_now(), remaining)
    if not due_posts:
        return {"message": "No posts due"}

    client = build_graph_client(http_client, settings, credentials)
    results: List[Dict[str, Any]] = []

    for post in due_posts:
        try:
            fb_post_id = await client.publish(post.content, post.image_url)
        except SocialBotError as e:
            logger.warning(f"Auto post failed for {post.id}: {e}")
            results.append({"postId": str(post.id), "status": "failed", "error": str(e)})
            continue

        await repo.mark_post_published(session, post.id, fb_post_id)

        try:
            engagement = await client.fetch_engagement(fb_post_id)
        except FacebookAPIError as e:
            logger.warning(f"Engagement read failed for {fb_post_id}: {e}")
        else:
            await repo.update_post_engagement(session, post.id, engagement.likes, engagement.comments)

        results.append({"postId": str(post.id), "status": "published", "fbPostId": fb_post_id})

    logger.info(
        f"Auto post finished: {sum(r['status'] == 'published' for r in results)}/{len(results)} published"
    )
    return {"results": results}
