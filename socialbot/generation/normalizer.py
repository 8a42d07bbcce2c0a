"""
Response normalization.

Turns raw provider payloads into usable post text or trend records. The
known payload shapes form a closed set; anything else is rejected rather
than guessed at.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from socialbot.core.errors import NormalizationError, UnrecognizedResponseError

THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
THINK_OPEN = re.compile(r"<think>", re.IGNORECASE)

WRAPPING_QUOTES = {'"': '"', "'": "'", "“": "”"}

TOPIC_KEYS = ("trend", "topic", "title", "name")
PLATFORM_KEYS = ("platform", "source")


class ResponseShape(str, Enum):
    """Payload shapes returned by the supported providers."""
    CHAT_COMPLETION = "chat_completion"   # {"choices": [{"message": {"content": ...}}]}
    COMPLETION = "completion"             # {"generated_text": ...}
    COMPLETION_LIST = "completion_list"   # [{"generated_text": ...}, ...]


@dataclass
class TrendItem:
    """A single trending topic as parsed from a provider."""
    topic: str
    platform: Optional[str] = None
    category: Optional[str] = None
    engagement_score: Optional[int] = None
    source: Optional[str] = None


def detect_shape(payload: Any) -> ResponseShape:
    if isinstance(payload, dict):
        if "choices" in payload:
            return ResponseShape.CHAT_COMPLETION
        if "generated_text" in payload:
            return ResponseShape.COMPLETION
    elif isinstance(payload, list):
        if payload and isinstance(payload[0], dict) and "generated_text" in payload[0]:
            return ResponseShape.COMPLETION_LIST

    raise UnrecognizedResponseError(f"Unrecognized response shape: {type(payload).__name__}")


def strip_thinking(text: str) -> str:
    """Remove reasoning blocks; an unterminated ``<think>`` drops the rest."""
    text = THINK_BLOCK.sub("", text)
    match = THINK_OPEN.search(text)
    if match:
        text = text[:match.start()]
    return text


def extract_content(payload: Any) -> str:
    """
    Pull the generated text out of a provider payload.

    Args:
        payload: Decoded JSON body in one of the ``ResponseShape`` forms

    Returns:
        Trimmed content with reasoning blocks removed

    Raises:
        UnrecognizedResponseError: payload matches no known shape
        NormalizationError: content missing, not text, or blank
    """
    shape = detect_shape(payload)

    try:
        if shape is ResponseShape.CHAT_COMPLETION:
            content = payload["choices"][0]["message"]["content"]
        elif shape is ResponseShape.COMPLETION:
            content = payload["generated_text"]
        else:
            content = payload[0]["generated_text"]
    except (KeyError, IndexError, TypeError):
        raise UnrecognizedResponseError(f"Malformed {shape.value} response")

    if not isinstance(content, str):
        raise NormalizationError("Response content is empty")

    content = strip_thinking(content).strip()
    if not content:
        raise NormalizationError("Response content is empty")
    return content


def extract_json_array(text: str, accept: Optional[Callable[[List[Any]], bool]] = None) -> List[Any]:
    """
    Recover a JSON array from model output.

    Handles bare arrays, fenced code blocks and arrays wrapped in prose. Each
    ``[`` is tried in turn, parsing up to the last ``]`` and then the
    balanced bracket span, so stray brackets in the prose (``see [1]``) do
    not hide the real array.

    Args:
        text: Model output
        accept: Optional check a parsed list must pass to be returned
    """
    end = text.rfind("]")
    start = text.find("[")
    if start == -1 or end < start:
        raise NormalizationError("No JSON array in response")

    while start != -1 and start < end:
        candidates = [text[start:end + 1]]
        balanced = _balanced_span(text, start)
        if balanced and balanced != candidates[0]:
            candidates.append(balanced)

        for candidate in candidates:
            try:
                value = json.loads(candidate)
            except ValueError:
                continue
            if isinstance(value, list) and (accept is None or accept(value)):
                return value

        start = text.find("[", start + 1)

    raise NormalizationError("Could not parse JSON array from response")


def _balanced_span(text: str, start: int) -> Optional[str]:
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def normalize_post_text(payload: Any) -> str:
    """Post body from a payload, without one pair of wrapping quotes."""
    content = extract_content(payload)

    closing = WRAPPING_QUOTES.get(content[0])
    if closing and len(content) > 1 and content.endswith(closing):
        content = content[1:-1].strip()

    if not content:
        raise NormalizationError("Post text is empty")
    return content


def normalize_trend_items(payload: Any, limit: Optional[int] = None) -> List[TrendItem]:
    """
    Trend records from a payload.

    Args:
        payload: Provider payload whose content holds a JSON array
        limit: Keep at most this many items

    Returns:
        Non-empty list of TrendItem
    """
    raw_items = extract_json_array(
        extract_content(payload),
        accept=lambda values: any(_to_trend_item(raw) is not None for raw in values),
    )

    items = [item for item in (_to_trend_item(raw) for raw in raw_items) if item is not None]
    if limit is not None:
        items = items[:limit]
    if not items:
        raise NormalizationError("Response contained no usable trends")
    return items


def titles_to_trend_items(titles: List[str], limit: Optional[int] = None) -> List[TrendItem]:
    """Trend records from plain feed titles."""
    items = [
        TrendItem(topic=title.strip(), platform="Google Trends", category="trending", engagement_score=75)
        for title in titles
        if title and title.strip()
    ]
    if limit is not None:
        items = items[:limit]
    if not items:
        raise NormalizationError("Feed contained no titles")
    return items


def _to_trend_item(raw: Any) -> Optional[TrendItem]:
    if isinstance(raw, str):
        topic = raw.strip()
        return TrendItem(topic=topic) if topic else None

    if not isinstance(raw, dict):
        return None

    topic = next((raw[key] for key in TOPIC_KEYS if isinstance(raw.get(key), str) and raw[key].strip()), None)
    if topic is None:
        return None

    platform = next((raw[key] for key in PLATFORM_KEYS if isinstance(raw.get(key), str)), None)
    category = raw.get("category") if isinstance(raw.get("category"), str) else None

    return TrendItem(
        topic=topic.strip(),
        platform=platform,
        category=category,
        engagement_score=_as_score(raw.get("engagement_score")),
    )


def _as_score(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None
