"""
FastAPI application for SocialBot.

Exposes trend and post management, content generation and Facebook
publishing as a JSON API. Every failure is answered with
``{"error": "<message>"}``.
"""

from typing import AsyncGenerator, List

import httpx
import uvicorn
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from socialbot import __version__
from socialbot.core import repositories as repo
from socialbot.core.db import create_all, get_db
from socialbot.core.errors import MissingFieldError, NotFoundError, SocialBotError
from socialbot.core.logging import get_logger, setup_logging
from socialbot.core.settings import Settings, get_settings, settings
from socialbot.core.time import utc_now
from socialbot.generation.pipeline import (
    generate_and_store_autoreply,
    generate_and_store_post,
    generate_and_store_trends,
)
from socialbot.generation.posts import AutoreplyGenerator, PostGenerator
from socialbot.generation.trends import TrendGenerator
from socialbot.publisher.service import (
    publish_post,
    refresh_engagement,
    run_auto_post,
    verify_page_connection,
)

from .schemas import (
    AutoreplyOut,
    ConnectionCheckRequest,
    FetchEngagementRequest,
    GenerateAutoreplyRequest,
    GeneratePostRequest,
    PostOut,
    PostToFacebookRequest,
    PostUpdate,
    SettingsOut,
    SettingsUpdate,
    TrendBatchOut,
    TrendCreate,
    TrendOut,
)

# Setup logging
setup_logging("api")
logger = get_logger(__name__)

# FastAPI app initialization
app = FastAPI(
    title="SocialBot API",
    description="Trend discovery, post generation and Facebook Page publishing",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound HTTP client scoped to one request."""
    async with httpx.AsyncClient(headers={"User-Agent": f"SocialBot/{__version__}"}) as client:
        yield client


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _required(value, name: str) -> str:
    if value is None or not str(value).strip():
        raise MissingFieldError(f"Missing {name}")
    return str(value).strip()


# =============================================================================
# Health
# =============================================================================

@app.get("/")
async def root(app_settings: Settings = Depends(get_settings)):
    """Service information."""
    return {
        "name": app_settings.app_name,
        "version": __version__,
        "environment": app_settings.environment,
        "docs": "/docs",
    }


@app.get("/healthz")
async def liveness():
    return {"status": "ok"}


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check including the database connection."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unavailable", "error": str(e)},
        )
    return {"status": "healthy", "database": "connected", "timestamp": utc_now().isoformat()}


# =============================================================================
# Trends
# =============================================================================

@app.get("/api/trends", response_model=List[TrendOut])
async def list_trends(db: AsyncSession = Depends(get_db)):
    return await repo.list_trends(db)


@app.post("/api/trends", response_model=TrendOut, status_code=201)
async def add_trend(body: TrendCreate, db: AsyncSession = Depends(get_db)):
    """Add a trend by hand."""
    topic = _required(body.topic, "topic")
    return await repo.create_trend(db, topic, source="manual")


@app.post("/api/generate-trends", response_model=TrendBatchOut)
async def generate_trends(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Discover trends through the provider chain and store them."""
    generator = TrendGenerator.from_settings(app_settings, http_client)
    trends, result = await generate_and_store_trends(db, generator)
    return TrendBatchOut(
        trends=[TrendOut.model_validate(t) for t in trends],
        source=result.source,
        count=len(trends),
        message=None if trends else "All topics already exist",
    )


# =============================================================================
# Posts
# =============================================================================

@app.get("/api/posts", response_model=List[PostOut])
async def list_posts(db: AsyncSession = Depends(get_db)):
    return await repo.list_posts(db)


@app.patch("/api/posts/{post_id}", response_model=PostOut)
async def update_post(post_id: str, body: PostUpdate, db: AsyncSession = Depends(get_db)):
    """Update content and/or scheduled_time; keys absent from the body are left alone."""
    return await repo.update_post(db, post_id, body.model_dump(exclude_unset=True))


@app.delete("/api/posts/{post_id}")
async def delete_post(post_id: str, db: AsyncSession = Depends(get_db)):
    if not await repo.delete_post(db, post_id):
        raise NotFoundError("Post not found")
    return {"success": True}


@app.post("/api/generate-post", response_model=PostOut, status_code=201)
async def generate_post(
    body: GeneratePostRequest,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Generate and store a post.

    With only ``trendId`` the topic is read from the trend; with neither
    ``trendId`` nor ``topic`` the request is rejected.
    """
    topic = (body.topic or "").strip()
    trend_id = (body.trend_id or "").strip() or None

    if trend_id:
        trend = await repo.get_trend(db, trend_id)
        if trend is None:
            raise NotFoundError("Trend not found")
        topic = topic or trend.topic
    elif not topic:
        raise MissingFieldError("Missing trendId or topic")

    generator = PostGenerator.from_settings(app_settings, http_client)
    return await generate_and_store_post(
        db,
        generator,
        topic,
        trend_id=trend_id,
        schedule_delay_minutes=app_settings.post_schedule_delay_minutes,
    )


# =============================================================================
# Settings
# =============================================================================

@app.get("/api/settings")
async def get_automation_settings(db: AsyncSession = Depends(get_db)):
    """The settings row, or an empty object when none exists yet."""
    row = await repo.get_settings_row(db)
    if row is None:
        return {}
    return SettingsOut.model_validate(row)


@app.patch("/api/settings", response_model=SettingsOut)
async def update_automation_settings(body: SettingsUpdate, db: AsyncSession = Depends(get_db)):
    return await repo.upsert_settings(db, body.model_dump(exclude_unset=True))


# =============================================================================
# Facebook
# =============================================================================

@app.post("/api/post-to-facebook")
async def post_to_facebook(
    body: PostToFacebookRequest,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    post_id = _required(body.post_id, "postId")
    fb_post_id = await publish_post(db, post_id, http_client, app_settings)
    return {"success": True, "facebookPostId": fb_post_id}


@app.post("/api/fetch-engagement")
async def fetch_engagement(
    body: FetchEngagementRequest,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    post_id = _required(body.post_id, "postId")
    engagement = await refresh_engagement(
        db, post_id, http_client, app_settings, facebook_post_id=body.facebook_post_id
    )
    return {"success": True, "likes": engagement.likes, "comments": engagement.comments}


@app.post("/api/test-connection")
async def test_connection(
    body: ConnectionCheckRequest,
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Check page credentials against the Graph API."""
    page_id = _required(body.page_id, "pageId")
    access_token = _required(body.access_token, "accessToken")
    return await verify_page_connection(http_client, app_settings, page_id, access_token)


@app.post("/api/auto-post")
async def auto_post(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """Publish due scheduled posts within the daily limit."""
    return await run_auto_post(db, http_client, app_settings)


@app.post("/api/generate-autoreply", response_model=AutoreplyOut, status_code=201)
async def generate_autoreply(
    body: GenerateAutoreplyRequest,
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    comment = _required(body.comment, "comment")
    generator = AutoreplyGenerator.from_settings(app_settings, http_client)
    return await generate_and_store_autoreply(db, generator, comment, post_id=body.post_id or None)


# =============================================================================
# Lifecycle and error handling
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize the service."""
    logger.info(f"Starting SocialBot API ({settings.environment})")
    if settings.db_auto_create:
        await create_all()
        logger.info("Database tables ensured")


@app.exception_handler(SocialBotError)
async def socialbot_exception_handler(request, exc: SocialBotError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return error_response(exc.http_status, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return error_response(500, f"Database error: {exc.__class__.__name__}")


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle unexpected errors."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, str(exc) or "Internal server error")


def main():
    """Run the API with uvicorn."""
    uvicorn.run(
        "socialbot.api.app:app",
        host=settings.service_host,
        port=settings.service_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
