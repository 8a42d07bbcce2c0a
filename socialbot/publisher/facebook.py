"""Facebook Graph API client for page publishing and engagement reads."""

import base64
import binascii
from typing import Any, Dict, NamedTuple, Optional, Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from socialbot.core.errors import FacebookAPIError
from socialbot.core.logging import get_logger

logger = get_logger(__name__)

ENGAGEMENT_FIELDS = "likes.summary(true),comments.summary(true)"


class Engagement(NamedTuple):
    likes: int
    comments: int


class PageInfo(NamedTuple):
    id: str
    name: Optional[str]


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """
    Split a ``data:`` URL into raw bytes and its media type.

    Raises:
        FacebookAPIError: the URL is not base64 encoded data
    """
    header, sep, data = data_url.partition(",")
    if not sep or ";base64" not in header:
        raise FacebookAPIError("Image data URL is not base64 encoded")

    content_type = header[len("data:"):].split(";")[0] or "image/png"
    try:
        return base64.b64decode(data, validate=True), content_type
    except (binascii.Error, ValueError):
        raise FacebookAPIError("Image data URL is not valid base64")


class FacebookGraphClient:
    """Thin async client for the Page endpoints SocialBot uses."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        page_id: str,
        access_token: str,
        graph_url: str = "https://graph.facebook.com",
        timeout: float = 30.0,
    ):
        self.http_client = http_client
        self.page_id = page_id
        self.access_token = access_token
        self.graph_url = graph_url.rstrip("/")
        self.timeout = timeout

    async def publish(self, content: str, image_url: Optional[str] = None) -> str:
        """
        Publish a post to the page. Never retried.

        With an image the post goes to ``/photos`` as a multipart upload
        with ``caption``; otherwise to ``/feed`` with ``message``.

        Args:
            content: Post text
            image_url: ``data:`` URL or http(s) URL of the image

        Returns:
            The Facebook post id
        """
        if image_url:
            image_bytes, content_type = await self._load_image(image_url)
            data = await self._request(
                "POST",
                f"/{self.page_id}/photos",
                data={"caption": content, "access_token": self.access_token},
                files={"source": ("image.png", image_bytes, content_type)},
            )
            fb_post_id = data.get("post_id") or data.get("id")
        else:
            data = await self._request(
                "POST",
                f"/{self.page_id}/feed",
                json={"message": content, "access_token": self.access_token},
            )
            fb_post_id = data.get("id")

        if not fb_post_id:
            raise FacebookAPIError("Facebook response did not include a post id")

        logger.info(f"Published to page {self.page_id}: {fb_post_id}")
        return str(fb_post_id)

    async def fetch_engagement(self, fb_post_id: str) -> Engagement:
        """Likes and comments totals for a published post."""
        data = await self._get_with_retry(
            f"/{fb_post_id}",
            {"fields": ENGAGEMENT_FIELDS, "access_token": self.access_token},
        )
        return Engagement(
            likes=_total_count(data.get("likes")),
            comments=_total_count(data.get("comments")),
        )

    async def get_page(self) -> PageInfo:
        data = await self._get_with_retry(
            f"/{self.page_id}",
            {"fields": "name,id", "access_token": self.access_token},
        )
        return PageInfo(id=str(data.get("id") or self.page_id), name=data.get("name"))

    async def _load_image(self, image_url: str) -> Tuple[bytes, str]:
        if image_url.startswith("data:"):
            return decode_data_url(image_url)

        try:
            response = await self.http_client.get(image_url, timeout=self.timeout, follow_redirects=True)
        except httpx.HTTPError as e:
            raise FacebookAPIError(f"Could not download image: {e}")
        if not response.is_success:
            raise FacebookAPIError(f"Could not download image: HTTP {response.status_code}", response.status_code)

        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return response.content, content_type or "image/png"

    async def _get_with_retry(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await self._get(path, params)
        except httpx.HTTPError as e:
            raise FacebookAPIError(f"Facebook request failed: {e}")
        return _parse_graph_response(response)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4.0),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _get(self, path: str, params: Dict[str, str]) -> httpx.Response:
        logger.debug(f"Graph GET {path}")
        return await self.http_client.get(f"{self.graph_url}{path}", params=params, timeout=self.timeout)

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.http_client.request(
                method, f"{self.graph_url}{path}", timeout=self.timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise FacebookAPIError(f"Facebook request failed: {e}")
        return _parse_graph_response(response)


def _parse_graph_response(response: httpx.Response) -> Dict[str, Any]:
    """Decode a Graph API body, surfacing ``error.message`` as the failure."""
    try:
        data = response.json()
    except ValueError:
        raise FacebookAPIError(
            f"Facebook returned a non-JSON response (HTTP {response.status_code})",
            response.status_code,
        )

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise FacebookAPIError(message or "Facebook API error", response.status_code)

    if not response.is_success:
        raise FacebookAPIError(f"Facebook API error: HTTP {response.status_code}", response.status_code)
    if not isinstance(data, dict):
        raise FacebookAPIError("Unexpected Facebook response")
    return data


def _total_count(edge: Any) -> int:
    if not isinstance(edge, dict):
        return 0
    summary = edge.get("summary") or {}
    try:
        return int(summary.get("total_count") or 0)
    except (TypeError, ValueError):
        return 0
