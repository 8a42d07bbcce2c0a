"""Shared fixtures: isolated settings, a temporary SQLite database and a fake upstream."""

import asyncio
import json
import os
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

# Must be set before socialbot modules build their module-level engine
os.environ["DB_URL"] = "sqlite+aiosqlite://"
os.environ["DB_AUTO_CREATE"] = "false"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from socialbot.core import models  # noqa: F401
from socialbot.core.db import Base
from socialbot.core.settings import Settings

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
HF_ROUTER_URL = "https://router.huggingface.co/v1/chat/completions"
RSS_URL = "https://trends.google.com/trending/rss?geo=IN"
GRAPH_URL = "https://graph.facebook.com"

Route = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


def make_settings(**overrides) -> Settings:
    """Settings with every provider unconfigured unless overridden."""
    values: Dict[str, Any] = dict(
        _env_file=None,
        db_url="sqlite+aiosqlite://",
        groq_api_key="",
        huggingface_api_key="",
        post_providers="groq,huggingface",
        trends_providers="groq,huggingface",
        trends_use_hf=False,
        trends_hybrid_mode=False,
        trends_rss_url="",
        trends_fallback_file="",
        image_generation_enabled=False,
        post_schedule_delay_minutes=None,
        facebook_page_id="",
        facebook_page_access_token="",
        environment="test",
    )
    values.update(overrides)
    return Settings(**values)


def chat_response(content: Optional[str], status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"choices": [{"message": {"content": content}}]})


def trends_response(topics: List[str]) -> httpx.Response:
    items = [{"trend": t, "source": "Instagram", "category": "lifestyle", "engagement_score": 80} for t in topics]
    return chat_response(f"Here are the trends:\n{json.dumps(items)}")


def rss_response(titles: List[str]) -> httpx.Response:
    items = "".join(f"<item><title>{t}</title></item>" for t in titles)
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<rss version=\"2.0\"><channel><title>Daily Search Trends</title>{items}</channel></rss>"
    )
    return httpx.Response(200, content=body.encode(), headers={"Content-Type": "application/rss+xml"})


def graph_error(message: str, status_code: int = 400) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"message": message, "type": "OAuthException", "code": 190}})


class FakeUpstream:
    """
    Routes outbound requests to canned responses and records every call.

    Unrouted requests fail with a connection error, so a test that forgets
    a route sees the same behavior as an unreachable provider.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, route: Route):
        parsed = httpx.URL(url)
        self.routes[(method.upper(), parsed.host, parsed.path)] = route

    def calls_to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.host, request.url.path))
        if route is None:
            raise httpx.ConnectError(f"No route for {request.method} {request.url}", request=request)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        return route

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def http_client(upstream):
    async with httpx.AsyncClient(transport=upstream.transport()) as client:
        yield client


@pytest.fixture
def db_path(tmp_path):
    """SQLite file with all tables created."""
    path = tmp_path / "socialbot-test.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def session_factory(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    yield async_sessionmaker(engine, expire_on_commit=False)
    engine.sync_engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def run_db(session_factory):
    """Run an async callable with a fresh session from a synchronous test."""
    def _run(fn):
        async def go():
            async with session_factory() as db_session:
                return await fn(db_session)
        return asyncio.run(go())
    return _run


@pytest.fixture
def app_settings(settings):
    """Settings handed to the API; tests may replace attributes before requests."""
    return settings


@pytest.fixture
def client(session_factory, upstream, app_settings):
    from socialbot.api.app import app, get_http_client
    from socialbot.core.db import get_db
    from socialbot.core.settings import get_settings

    async def override_get_db():
        async with session_factory() as db_session:
            yield db_session

    async def override_get_http_client():
        async with httpx.AsyncClient(transport=upstream.transport()) as http:
            yield http

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_http_client] = override_get_http_client
    app.dependency_overrides[get_settings] = lambda: app_settings

    yield TestClient(app)

    app.dependency_overrides.clear()
