"""Post and autoreply generation."""

from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from socialbot.core.errors import NormalizationError
from socialbot.core.logging import get_logger
from socialbot.core.settings import Settings

from .normalizer import normalize_post_text
from .orchestrator import ChainStep, FallbackChain, GenerationResult, ProviderAttempt
from .providers import (
    PURPOSE_AUTOREPLY,
    PURPOSE_POST,
    GenerationRequest,
    ImageGenerationProvider,
    ProviderClient,
    ProviderFactory,
)

logger = get_logger(__name__)

STATIC_POST_TEMPLATE = "Check out our latest insights on {topic}! 🚀 Stay tuned for more updates."

STATIC_AUTOREPLY = "Thanks so much for your comment! We really appreciate you being part of our community."

MAX_REPLY_LENGTH = 150

POST_PROMPT = """Write ONLY a professional Facebook post about "{topic}".
Keep it 150-200 characters.
No hashtags.
No explanations.
Just the post text."""

AUTOREPLY_SYSTEM_PROMPT = """You are a helpful social media community manager. Generate thoughtful, engaging autoreply responses to comments.
Rules:
- Keep replies under 150 characters
- Be friendly and professional
- Answer questions if asked
- Thank users for engagement
- Maintain brand voice
- Avoid overly promotional content"""


def fallback_post_text(topic: str) -> str:
    return STATIC_POST_TEMPLATE.format(topic=topic)


def normalize_reply_text(payload) -> str:
    """Reply text capped at the reply length limit."""
    text = normalize_post_text(payload)
    if len(text) > MAX_REPLY_LENGTH:
        cut = text[:MAX_REPLY_LENGTH - 3].rsplit(" ", 1)[0].rstrip(",;:")
        text = f"{cut}..."
    return text


def passthrough_image(payload) -> str:
    if not isinstance(payload, str) or not payload:
        raise NormalizationError("Image provider returned no data")
    return payload


@dataclass
class PostDraft:
    """Generated post content before it is stored."""
    topic: str
    content: str
    source: str
    image_url: Optional[str] = None
    used_fallback: bool = False
    attempts: List[ProviderAttempt] = field(default_factory=list)


class PostGenerator:
    """Generates post text through the provider chain, then an optional image."""

    def __init__(
        self,
        providers: List[ProviderClient],
        image_provider: Optional[ImageGenerationProvider] = None,
        image_prompt_template: str = "Facebook post image about {topic}.",
    ):
        self.chain = FallbackChain(
            [ChainStep(source=p, normalize=normalize_post_text) for p in providers],
            label="post",
        )
        self.image_chain = None
        if image_provider is not None:
            self.image_chain = FallbackChain(
                [ChainStep(source=image_provider, normalize=passthrough_image)],
                label="image",
            )
        self.image_prompt_template = image_prompt_template

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "PostGenerator":
        image_provider = None
        if settings.image_generation_enabled:
            image_provider = ProviderFactory.create_image_provider(settings, http_client)
        return cls(
            providers=ProviderFactory.create_providers(settings, http_client, PURPOSE_POST),
            image_provider=image_provider,
            image_prompt_template=settings.image_prompt_template,
        )

    async def generate(self, topic: str) -> PostDraft:
        """
        Generate a post for a topic.

        Text always comes back: the fixed template is used when every
        provider fails. Image failures leave ``image_url`` unset.

        Args:
            topic: Trend topic the post is about

        Returns:
            PostDraft with content, optional image and provenance
        """
        request = GenerationRequest(prompt=POST_PROMPT.format(topic=topic), max_tokens=100, temperature=0.7)
        result = await self.chain.run(request, lambda: fallback_post_text(topic))

        image_url = await self.generate_image(topic)

        return PostDraft(
            topic=topic,
            content=result.value,
            source=result.source,
            image_url=image_url,
            used_fallback=result.used_fallback,
            attempts=result.attempts,
        )

    async def generate_image(self, topic: str) -> Optional[str]:
        if self.image_chain is None:
            return None

        request = GenerationRequest(prompt=self.image_prompt_template.format(topic=topic))
        result = await self.image_chain.first_success(request)
        if result is None:
            logger.info(f"No image for topic '{topic}', posting text only")
            return None
        return result.value


class AutoreplyGenerator:
    """Generates short replies to comments."""

    def __init__(self, providers: List[ProviderClient]):
        self.chain = FallbackChain(
            [ChainStep(source=p, normalize=normalize_reply_text) for p in providers],
            label="autoreply",
        )

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "AutoreplyGenerator":
        return cls(ProviderFactory.create_providers(settings, http_client, PURPOSE_AUTOREPLY))

    async def generate(self, comment: str) -> GenerationResult:
        request = GenerationRequest(
            prompt=f'Generate an autoreply response to this comment: "{comment}"',
            system=AUTOREPLY_SYSTEM_PROMPT,
            max_tokens=150,
            temperature=0.8,
        )
        return await self.chain.run(request, lambda: STATIC_AUTOREPLY)
