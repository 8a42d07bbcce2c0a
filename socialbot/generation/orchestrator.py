"""
Fallback orchestration across ordered generation sources.

A chain walks its steps in order, one attempt per source, and stops at the
first response that normalizes cleanly. Sources that are not configured are
skipped without a network call. When every step fails, ``run`` substitutes
static content so callers always get a value.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from socialbot.core.errors import NormalizationError, ProviderError
from socialbot.core.logging import get_logger

from .providers import GenerationRequest

logger = get_logger(__name__)

T = TypeVar("T")

FALLBACK_SOURCE = "fallback"


@dataclass
class ChainStep:
    """A generation source paired with the normalizer for its payload.

    ``source`` is anything with ``name``, ``is_configured`` and an async
    ``generate(request)``.
    """
    source: Any
    normalize: Callable[[Any], Any]

    @property
    def name(self) -> str:
        return self.source.name


@dataclass
class ProviderAttempt:
    provider: str
    success: bool
    skipped: bool = False
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass
class GenerationResult(Generic[T]):
    value: T
    source: str
    attempts: List[ProviderAttempt] = field(default_factory=list)
    used_fallback: bool = False


class FallbackChain:
    """Ordered, single-attempt-per-source generation chain."""

    def __init__(self, steps: Sequence[ChainStep], label: str = "generation"):
        self.steps = list(steps)
        self.label = label

    async def first_success(self, request: GenerationRequest) -> Optional[GenerationResult]:
        """First normalized result, or None when every step failed or was skipped."""
        result, _ = await self.walk(request)
        return result

    async def run(self, request: GenerationRequest, fallback: Callable[[], T]) -> GenerationResult:
        """
        Walk the chain, substituting static content on exhaustion.

        Args:
            request: Prompt sent to every attempted source
            fallback: Produces the static value when all sources fail

        Returns:
            GenerationResult tagged with the winning source name, or
            ``fallback`` with ``used_fallback`` set
        """
        result, attempts = await self.walk(request)
        if result is not None:
            return result

        logger.warning(
            f"All {self.label} sources failed, using static fallback",
            extra={"attempted": [a.provider for a in attempts if not a.skipped]}
        )
        return GenerationResult(
            value=fallback(),
            source=FALLBACK_SOURCE,
            attempts=attempts,
            used_fallback=True,
        )

    async def walk(self, request: GenerationRequest) -> Tuple[Optional[GenerationResult], List[ProviderAttempt]]:
        attempts: List[ProviderAttempt] = []

        for step in self.steps:
            if not step.source.is_configured:
                logger.debug(f"Skipping unconfigured {self.label} source {step.name}")
                attempts.append(ProviderAttempt(provider=step.name, success=False, skipped=True))
                continue

            start_time = time.monotonic()
            try:
                payload = await step.source.generate(request)
                value = step.normalize(payload)
            except (ProviderError, NormalizationError) as e:
                duration_ms = int((time.monotonic() - start_time) * 1000)
                logger.warning(
                    f"{self.label} source {step.name} failed: {e}",
                    extra={"provider": step.name, "duration_ms": duration_ms}
                )
                attempts.append(ProviderAttempt(
                    provider=step.name, success=False, error=str(e), duration_ms=duration_ms
                ))
                continue

            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                f"{self.label} succeeded with {step.name}",
                extra={"provider": step.name, "duration_ms": duration_ms}
            )
            attempts.append(ProviderAttempt(provider=step.name, success=True, duration_ms=duration_ms))
            return GenerationResult(value=value, source=step.name, attempts=attempts), attempts

        return None, attempts
