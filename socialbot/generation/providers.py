"""
Provider clients for text and image generation.

Each client wraps one upstream HTTP API and makes exactly one request per
``generate`` call. Failures of any kind (non-2xx, timeout, transport error,
undecodable body) surface as ``ProviderError``; recovering from them is the
fallback chain's job, not the client's.
"""

import base64
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from socialbot.core.errors import ProviderError
from socialbot.core.logging import get_logger
from socialbot.core.settings import Settings

logger = get_logger(__name__)

# Purposes a provider can be built for; each picks its own model
PURPOSE_POST = "post"
PURPOSE_TRENDS = "trends"
PURPOSE_AUTOREPLY = "autoreply"


@dataclass
class GenerationRequest:
    """A single prompt sent to a provider."""
    prompt: str
    system: Optional[str] = None
    max_tokens: int = 300
    temperature: float = 0.7


class ProviderClient(ABC):
    """Abstract base class for generation providers."""

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
    ):
        self.name = name
        self.api_key = (api_key or "").strip()
        self.model = (model or "").strip()
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        """Unconfigured providers are skipped without a network call."""
        return bool(self.api_key and self.model)

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> Any:
        """
        Send one request upstream.

        Args:
            request: Prompt and sampling parameters

        Returns:
            The provider's raw decoded payload

        Raises:
            ProviderError: on any failed attempt
        """
        pass

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        start_time = time.monotonic()
        try:
            response = await self.http_client.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            raise ProviderError(self.name, f"timed out after {self.timeout:g}s")
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}")

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(
            f"{self.name} responded {response.status_code}",
            extra={"provider": self.name, "model": self.model, "duration_ms": duration_ms}
        )

        if not response.is_success:
            raise ProviderError(
                self.name,
                f"HTTP {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
                body=response.text[:500],
            )
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise ProviderError(
                self.name,
                "response body is not JSON",
                status_code=response.status_code,
                body=response.text[:500],
            )


class ChatCompletionProvider(ProviderClient):
    """OpenAI-compatible chat completions (GROQ, Hugging Face router)."""

    async def generate(self, request: GenerationRequest) -> Any:
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": request.prompt})

        response = await self._post(
            f"{self.base_url}/chat/completions",
            {
                "model": self.model,
                "messages": messages,
                "max_tokens": request.max_tokens,
                "temperature": request.temperature,
            },
        )
        return self._json(response)


class TextGenerationProvider(ProviderClient):
    """Hugging Face Inference text generation (``generated_text`` payloads)."""

    async def generate(self, request: GenerationRequest) -> Any:
        prompt = request.prompt
        if request.system:
            prompt = f"{request.system}\n\n{prompt}"

        response = await self._post(
            f"{self.base_url}/models/{self.model}",
            {
                "inputs": prompt,
                "parameters": {
                    "max_new_tokens": request.max_tokens,
                    "temperature": request.temperature,
                    "return_full_text": False,
                },
            },
        )
        return self._json(response)


class ImageGenerationProvider(ProviderClient):
    """Hugging Face Inference text-to-image; returns a base64 ``data:`` URL."""

    async def generate(self, request: GenerationRequest) -> str:
        response = await self._post(
            f"{self.base_url}/models/{self.model}",
            {"inputs": request.prompt, "options": {"use_cache": False}},
        )

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type.startswith("image/"):
            raise ProviderError(
                self.name,
                f"expected an image, got {content_type or 'no content type'}",
                status_code=response.status_code,
                body=response.text[:500],
            )
        if not response.content:
            raise ProviderError(self.name, "empty image body", status_code=response.status_code)

        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from an upstream error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
    return response.text[:200]


# =============================================================================
# Factory
# =============================================================================

ProviderBuilder = Callable[[Settings, httpx.AsyncClient, str], ProviderClient]


def _build_groq(settings: Settings, http_client: httpx.AsyncClient, purpose: str) -> ProviderClient:
    model = settings.groq_model if purpose == PURPOSE_POST else settings.groq_trends_model
    return ChatCompletionProvider(
        name="GROQ",
        api_key=settings.groq_api_key,
        model=model,
        base_url=settings.groq_base_url,
        http_client=http_client,
        timeout=settings.text_timeout_seconds,
    )


def _build_huggingface(settings: Settings, http_client: httpx.AsyncClient, purpose: str) -> ProviderClient:
    model = settings.hf_json_model if purpose == PURPOSE_TRENDS else settings.hf_text_model
    return ChatCompletionProvider(
        name="HF",
        api_key=settings.huggingface_api_key,
        model=model,
        base_url=settings.hf_router_url,
        http_client=http_client,
        timeout=settings.text_timeout_seconds,
    )


def _build_huggingface_inference(settings: Settings, http_client: httpx.AsyncClient, purpose: str) -> ProviderClient:
    return TextGenerationProvider(
        name="HF-Inference",
        api_key=settings.huggingface_api_key,
        model=settings.hf_completion_model,
        base_url=settings.hf_inference_url,
        http_client=http_client,
        timeout=settings.text_timeout_seconds,
    )


class ProviderFactory:
    """Factory for creating ordered provider lists from settings."""

    _providers: Dict[str, ProviderBuilder] = {
        "groq": _build_groq,
        "huggingface": _build_huggingface,
        "huggingface-inference": _build_huggingface_inference,
    }

    @classmethod
    def create_provider(
        cls,
        provider_type: str,
        settings: Settings,
        http_client: httpx.AsyncClient,
        purpose: str = PURPOSE_POST,
    ) -> Optional[ProviderClient]:
        """
        Create a single provider.

        Args:
            provider_type: Registry key ("groq", "huggingface", ...)
            settings: Application settings holding keys and models
            http_client: Shared client for outbound calls
            purpose: Which model family to use

        Returns:
            ProviderClient instance, or None for unknown keys
        """
        builder = cls._providers.get(provider_type)
        if builder is None:
            logger.warning(f"Unknown provider type: {provider_type}, skipping")
            return None
        return builder(settings, http_client, purpose)

    @classmethod
    def create_providers(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient,
        purpose: str = PURPOSE_POST,
    ) -> List[ProviderClient]:
        """Providers in configured try order for the given purpose."""
        if purpose == PURPOSE_TRENDS:
            names = settings.trends_provider_order
        else:
            names = settings.post_provider_order

        providers = []
        for name in names:
            provider = cls.create_provider(name, settings, http_client, purpose)
            if provider is not None:
                providers.append(provider)
        return providers

    @classmethod
    def create_image_provider(cls, settings: Settings, http_client: httpx.AsyncClient) -> ImageGenerationProvider:
        return ImageGenerationProvider(
            name="HF-Image",
            api_key=settings.huggingface_api_key,
            model=settings.hf_image_model,
            base_url=settings.hf_inference_url,
            http_client=http_client,
            timeout=settings.image_timeout_seconds,
        )

    @classmethod
    def register_provider(cls, name: str, builder: ProviderBuilder):
        """Register a new provider type."""
        cls._providers[name] = builder

    @classmethod
    def list_providers(cls) -> List[str]:
        """List available provider types."""
        return list(cls._providers.keys())
