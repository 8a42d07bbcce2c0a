"""Content generation: providers, normalization and fallback chains."""

from .normalizer import ResponseShape, TrendItem
from .orchestrator import ChainStep, FallbackChain, GenerationResult, ProviderAttempt
from .posts import AutoreplyGenerator, PostDraft, PostGenerator
from .providers import GenerationRequest, ProviderClient, ProviderFactory
from .trends import RSSTrendSource, TrendGenerator

__all__ = [
    "AutoreplyGenerator",
    "ChainStep",
    "FallbackChain",
    "GenerationRequest",
    "GenerationResult",
    "PostDraft",
    "PostGenerator",
    "ProviderAttempt",
    "ProviderClient",
    "ProviderFactory",
    "RSSTrendSource",
    "ResponseShape",
    "TrendGenerator",
    "TrendItem",
]
