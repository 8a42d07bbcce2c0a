"""Facebook Page publishing."""

from .facebook import Engagement, FacebookGraphClient, PageInfo
from .service import publish_post, refresh_engagement, resolve_facebook_credentials, run_auto_post, verify_page_connection

__all__ = [
    "Engagement",
    "FacebookGraphClient",
    "PageInfo",
    "publish_post",
    "refresh_engagement",
    "resolve_facebook_credentials",
    "run_auto_post",
    "verify_page_connection",
]
