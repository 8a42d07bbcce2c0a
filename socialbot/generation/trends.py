"""
Trend discovery.

AI providers are tried in configured order, followed by the Google Trends
RSS feed and finally a static topic list. Hybrid mode instead asks two AI
providers and the feed at once and keeps the batch only when every source
delivered its share.
"""

import asyncio
from functools import partial
from pathlib import Path
from typing import List, Optional

import feedparser
import httpx
import yaml

from socialbot.core.errors import ProviderError
from socialbot.core.logging import get_logger
from socialbot.core.settings import Settings
from socialbot.core.time import utc_now

from .normalizer import TrendItem, normalize_trend_items, titles_to_trend_items
from .orchestrator import ChainStep, FallbackChain, GenerationResult
from .providers import PURPOSE_TRENDS, GenerationRequest, ProviderClient, ProviderFactory

logger = get_logger(__name__)

HYBRID_SOURCE = "hybrid"
RSS_SOURCE = "RSS"

DEFAULT_FALLBACK_TOPICS = [
    "AI in Healthcare",
    "Remote Work Tips",
    "Sustainable Fashion",
    "Digital Nomad Life",
    "Mental Health Awareness",
]

TRENDS_SYSTEM_PROMPT = """You are a trends generation API.
Return ONLY valid JSON.
Do NOT include explanations, markdown, or backticks.
Output must be a valid JSON array.
Each item must follow this exact format:
{
  "trend": "string",
  "source": "string",
  "category": "string",
  "engagement_score": number
}"""


def build_trends_prompt(count: int, region: str) -> GenerationRequest:
    prompt = (
        f"Generate {count} latest social media trends relevant for {region} in {utc_now().year}.\n"
        "Sources can be: Facebook, Instagram, YouTube, X, LinkedIn.\n"
        "Engagement score must be between 1 and 100.\n"
        "Return ONLY valid JSON array, nothing else."
    )
    return GenerationRequest(prompt=prompt, system=TRENDS_SYSTEM_PROMPT, max_tokens=500, temperature=0.3)


def load_fallback_topics(path: Optional[str]) -> List[str]:
    """
    Static topics used when every source fails.

    A YAML file with a ``topics`` list overrides the built-in defaults. A
    missing or malformed file falls back to the defaults.
    """
    if not path:
        return list(DEFAULT_FALLBACK_TOPICS)

    file_path = Path(path)
    if not file_path.is_file():
        return list(DEFAULT_FALLBACK_TOPICS)

    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read fallback topics from {path}: {e}")
        return list(DEFAULT_FALLBACK_TOPICS)

    topics = data.get("topics") if isinstance(data, dict) else None
    topics = [str(t).strip() for t in topics or [] if str(t).strip()]
    return topics or list(DEFAULT_FALLBACK_TOPICS)


class RSSTrendSource:
    """Google Trends RSS feed as a non-AI trend source."""

    name = RSS_SOURCE

    def __init__(self, url: str, http_client: httpx.AsyncClient, timeout: float = 5.0):
        self.url = (url or "").strip()
        self.http_client = http_client
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    async def generate(self, request: GenerationRequest) -> List[str]:
        """Fetch the feed and return entry titles; the prompt is ignored."""
        try:
            response = await self.http_client.get(
                self.url,
                timeout=self.timeout,
                headers={"User-Agent": "SocialBot/1.0 (trend discovery)"},
                follow_redirects=True,
            )
        except httpx.TimeoutException:
            raise ProviderError(self.name, f"timed out after {self.timeout:g}s")
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}")

        if not response.is_success:
            raise ProviderError(self.name, f"HTTP {response.status_code}", status_code=response.status_code)

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            raise ProviderError(self.name, f"feed parse error: {feed.get('bozo_exception')}")

        return [entry.get("title", "") for entry in feed.entries]


class TrendGenerator:
    """Produces a batch of trend topics from the configured sources."""

    def __init__(
        self,
        providers: List[ProviderClient],
        rss_source: Optional[RSSTrendSource] = None,
        count: int = 5,
        region: str = "India",
        fallback_topics: Optional[List[str]] = None,
        hybrid_mode: bool = False,
        hybrid_ai_count: int = 2,
        hybrid_rss_count: int = 1,
    ):
        self.providers = providers
        self.rss_source = rss_source
        self.count = count
        self.region = region
        self.fallback_topics = fallback_topics or list(DEFAULT_FALLBACK_TOPICS)
        self.hybrid_mode = hybrid_mode
        self.hybrid_ai_count = hybrid_ai_count
        self.hybrid_rss_count = hybrid_rss_count

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "TrendGenerator":
        return cls(
            providers=ProviderFactory.create_providers(settings, http_client, PURPOSE_TRENDS),
            rss_source=RSSTrendSource(settings.trends_rss_url, http_client, settings.rss_timeout_seconds),
            count=settings.trends_count,
            region=settings.trends_region,
            fallback_topics=load_fallback_topics(settings.trends_fallback_file),
            hybrid_mode=settings.trends_hybrid_mode,
            hybrid_ai_count=settings.trends_hybrid_ai_count,
            hybrid_rss_count=settings.trends_hybrid_rss_count,
        )

    def build_chain(self, count: int) -> FallbackChain:
        """AI providers in order, then the RSS feed."""
        steps = [
            ChainStep(source=provider, normalize=partial(normalize_trend_items, limit=count))
            for provider in self.providers
        ]
        if self.rss_source is not None:
            steps.append(ChainStep(source=self.rss_source, normalize=partial(titles_to_trend_items, limit=count)))
        return FallbackChain(steps, label="trends")

    def fallback_items(self) -> List[TrendItem]:
        return [TrendItem(topic=topic, category="evergreen") for topic in self.fallback_topics[:self.count]]

    async def generate(self) -> GenerationResult:
        """
        Generate a batch of trends.

        Returns:
            GenerationResult whose value is a list of TrendItem, each tagged
            with the source that produced it
        """
        if self.hybrid_mode:
            hybrid = await self.generate_hybrid()
            if hybrid is not None:
                return hybrid

        chain = self.build_chain(self.count)
        result = await chain.run(build_trends_prompt(self.count, self.region), self.fallback_items)
        for item in result.value:
            item.source = result.source
        return result

    async def generate_hybrid(self) -> Optional[GenerationResult]:
        """
        Query two AI providers and the feed concurrently.

        Returns:
            The combined batch, or None when hybrid mode is not possible or
            any sub-source fell short of its minimum
        """
        ai_providers = [p for p in self.providers if p.is_configured][:2]
        if len(ai_providers) < 2 or self.rss_source is None or not self.rss_source.is_configured:
            logger.info("Hybrid trends need two configured AI providers and RSS, using single chain")
            return None

        plan = [
            (FallbackChain([ChainStep(p, partial(normalize_trend_items, limit=self.hybrid_ai_count))], label="trends"),
             build_trends_prompt(self.hybrid_ai_count, self.region),
             self.hybrid_ai_count)
            for p in ai_providers
        ]
        plan.append((
            FallbackChain(
                [ChainStep(self.rss_source, partial(titles_to_trend_items, limit=self.hybrid_rss_count))],
                label="trends",
            ),
            build_trends_prompt(self.hybrid_rss_count, self.region),
            self.hybrid_rss_count,
        ))

        results = await asyncio.gather(*(chain.walk(request) for chain, request, _ in plan))

        items: List[TrendItem] = []
        attempts = []
        for (_, _, minimum), (result, step_attempts) in zip(plan, results):
            attempts.extend(step_attempts)
            if result is None or len(result.value) < minimum:
                got = 0 if result is None else len(result.value)
                logger.warning(
                    f"Hybrid trends discarded: {step_attempts[0].provider} returned {got}, needed {minimum}"
                )
                return None
            for item in result.value:
                item.source = result.source
                items.append(item)

        logger.info(f"Hybrid trends accepted: {len(items)} items")
        return GenerationResult(value=items, source=HYBRID_SOURCE, attempts=attempts)
