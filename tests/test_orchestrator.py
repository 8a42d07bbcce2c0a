"""Tests for the fallback chain."""

import pytest

from socialbot.core.errors import NormalizationError, ProviderError
from socialbot.generation.normalizer import normalize_post_text
from socialbot.generation.orchestrator import FALLBACK_SOURCE, ChainStep, FallbackChain
from socialbot.generation.providers import GenerationRequest


class StubSource:
    """In-memory source returning canned payloads or raising."""

    def __init__(self, name, result=None, configured=True):
        self.name = name
        self.result = result
        self.configured = configured
        self.calls = 0

    @property
    def is_configured(self):
        return self.configured

    async def generate(self, request):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def chat(content):
    return {"choices": [{"message": {"content": content}}]}


REQUEST = GenerationRequest(prompt="Write a post")


class TestFallbackChain:

    @pytest.mark.asyncio
    async def test_first_success_wins_and_later_sources_untouched(self):
        first = StubSource("A", chat("from A"))
        second = StubSource("B", chat("from B"))
        chain = FallbackChain([ChainStep(first, normalize_post_text), ChainStep(second, normalize_post_text)])

        result = await chain.run(REQUEST, lambda: "static")

        assert result.value == "from A"
        assert result.source == "A"
        assert result.used_fallback is False
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_failures_recovered_in_order(self):
        failing = StubSource("A", ProviderError("A", "HTTP 500: boom", status_code=500))
        empty = StubSource("B", chat("   "))
        working = StubSource("C", {"generated_text": "from C"})
        chain = FallbackChain([
            ChainStep(failing, normalize_post_text),
            ChainStep(empty, normalize_post_text),
            ChainStep(working, normalize_post_text),
        ])

        result = await chain.run(REQUEST, lambda: "static")

        assert result.value == "from C"
        assert result.source == "C"
        assert [(a.provider, a.success) for a in result.attempts] == [("A", False), ("B", False), ("C", True)]
        assert "boom" in result.attempts[0].error
        assert failing.calls == empty.calls == working.calls == 1

    @pytest.mark.asyncio
    async def test_unconfigured_sources_skipped_without_call(self):
        skipped = StubSource("A", chat("never"), configured=False)
        working = StubSource("B", chat("from B"))
        chain = FallbackChain([ChainStep(skipped, normalize_post_text), ChainStep(working, normalize_post_text)])

        result = await chain.run(REQUEST, lambda: "static")

        assert result.source == "B"
        assert skipped.calls == 0
        assert result.attempts[0].skipped is True

    @pytest.mark.asyncio
    async def test_exhaustion_uses_fallback(self):
        chain = FallbackChain([
            ChainStep(StubSource("A", ProviderError("A", "timed out after 10s")), normalize_post_text),
            ChainStep(StubSource("B", {"unexpected": True}), normalize_post_text),
        ])

        result = await chain.run(REQUEST, lambda: "static")

        assert result.value == "static"
        assert result.source == FALLBACK_SOURCE
        assert result.used_fallback is True
        assert len(result.attempts) == 2

    @pytest.mark.asyncio
    async def test_first_success_returns_none_on_exhaustion(self):
        chain = FallbackChain([ChainStep(StubSource("A", chat("")), normalize_post_text)])

        assert await chain.first_success(REQUEST) is None

    @pytest.mark.asyncio
    async def test_each_source_attempted_once(self):
        flaky = StubSource("A", ProviderError("A", "HTTP 503: unavailable", status_code=503))
        chain = FallbackChain([ChainStep(flaky, normalize_post_text)])

        await chain.run(REQUEST, lambda: "static")

        assert flaky.calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self):
        broken = StubSource("A", RuntimeError("bug"))
        chain = FallbackChain([ChainStep(broken, normalize_post_text)])

        with pytest.raises(RuntimeError):
            await chain.run(REQUEST, lambda: "static")

    @pytest.mark.asyncio
    async def test_normalizer_errors_are_recovered(self):
        def reject(payload):
            raise NormalizationError("nope")

        chain = FallbackChain([ChainStep(StubSource("A", chat("x")), reject)])

        result = await chain.run(REQUEST, lambda: "static")

        assert result.used_fallback is True
