from __future__ import annotations

import dataclasses
import logging
from typing import Any

from bookmark_analyzer.errors import ERROR_VALIDATION
from bookmark_analyzer.models import AnalysisSource, Category, ContentAnalysis, ContentValue, Sentiment
from bookmark_analyzer.utils import unique_lower


logger = logging.getLogger(__name__)


CATEGORY_ALIASES: dict[str, Category] = {
    "technology": Category.TECHNOLOGY,
    "tech": Category.TECHNOLOGY,
    "business": Category.BUSINESS,
    "finance": Category.FINANCE,
    "money": Category.FINANCE,
    "investing": Category.FINANCE,
    "science": Category.SCIENCE,
    "scientific": Category.SCIENCE,
    "ai": Category.AI,
    "artificial intelligence": Category.AI,
    "machine learning": Category.AI,
    "development": Category.DEVELOPMENT,
    "programming": Category.DEVELOPMENT,
    "coding": Category.DEVELOPMENT,
    "software": Category.DEVELOPMENT,
    "entertainment": Category.ENTERTAINMENT,
    "fun": Category.ENTERTAINMENT,
    "gaming": Category.ENTERTAINMENT,
    "memes": Category.MEMES,
    "meme": Category.MEMES,
    "funny": Category.MEMES,
    "humor": Category.MEMES,
    "health": Category.HEALTH,
    "medical": Category.HEALTH,
    "fitness": Category.HEALTH,
    "wellness": Category.HEALTH,
    "news": Category.NEWS,
    "current events": Category.NEWS,
    "social": Category.SOCIAL,
    "social media": Category.SOCIAL,
    "education": Category.EDUCATION,
    "learning": Category.EDUCATION,
    "tutorial": Category.EDUCATION,
    "course": Category.EDUCATION,
    "other": Category.OTHER,
}

SENTIMENT_ALIASES: dict[str, Sentiment] = {
    "positive": Sentiment.POSITIVE,
    "pozytywny": Sentiment.POSITIVE,
    "negative": Sentiment.NEGATIVE,
    "negatywny": Sentiment.NEGATIVE,
    "neutral": Sentiment.NEUTRAL,
    "neutralny": Sentiment.NEUTRAL,
}

CONTENT_VALUE_ALIASES: dict[str, ContentValue] = {
    "high": ContentValue.HIGH,
    "wysoka": ContentValue.HIGH,
    "medium": ContentValue.MEDIUM,
    "średnia": ContentValue.MEDIUM,
    "srednia": ContentValue.MEDIUM,
    "low": ContentValue.LOW,
    "niska": ContentValue.LOW,
}


def map_category(value: str) -> Category:
    return CATEGORY_ALIASES.get(value.strip().lower(), Category.OTHER)


def normalize_categories(categories) -> list[Category]:
    """Unique, ordered, with ``other`` dropped when a real category exists."""
    unique = list(dict.fromkeys(categories))
    real = [c for c in unique if c != Category.OTHER]
    return real or ([Category.OTHER] if unique else [])


def _field(payload: dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in payload:
            return payload[name]
    return None


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _string_list(value: Any) -> list[str] | None:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    items = [v.strip() for v in value if isinstance(v, str) and v.strip()]
    return items or None


def _discard(name: str, value: Any) -> None:
    logger.debug("%s: discarding model field %s=%r", ERROR_VALIDATION, name, value)


def merge_model_payload(base: ContentAnalysis, payload: dict[str, Any]) -> ContentAnalysis:
    """Overlay validated model fields on ``base``.

    Each field is checked on its own; an invalid field is dropped and the
    value from ``base`` kept.
    """
    out = dataclasses.replace(
        base,
        key_points=list(base.key_points),
        categories=list(base.categories),
        suggested_tags=list(base.suggested_tags),
    )

    summary = _field(payload, "summary")
    if _text(summary):
        out.summary = _text(summary)
    elif summary is not None:
        _discard("summary", summary)

    main_topic = _field(payload, "mainTopic", "main_topic")
    if _text(main_topic):
        out.main_topic = _text(main_topic)
    elif main_topic is not None:
        _discard("mainTopic", main_topic)

    key_points = _field(payload, "keyPoints", "keypoints", "key_points")
    if _string_list(key_points):
        out.key_points = _string_list(key_points)
    elif key_points is not None:
        _discard("keyPoints", key_points)

    raw_categories = _string_list(_field(payload, "categories"))
    if raw_categories:
        out.categories = normalize_categories(map_category(c) for c in raw_categories)
    elif _field(payload, "categories") is not None:
        _discard("categories", _field(payload, "categories"))

    sentiment = _field(payload, "sentiment")
    if isinstance(sentiment, str) and sentiment.strip().lower() in SENTIMENT_ALIASES:
        out.sentiment = SENTIMENT_ALIASES[sentiment.strip().lower()]
    elif sentiment is not None:
        _discard("sentiment", sentiment)

    value = _field(payload, "contentValue", "content_value")
    if isinstance(value, str) and value.strip().lower() in CONTENT_VALUE_ALIASES:
        out.content_value = CONTENT_VALUE_ALIASES[value.strip().lower()]
    elif value is not None:
        _discard("contentValue", value)

    folder = _field(payload, "suggestedFolder", "suggested_folder")
    if _text(folder):
        out.suggested_folder = _text(folder)
    elif folder is not None:
        _discard("suggestedFolder", folder)

    confidence = _field(payload, "confidence")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool) and 0.0 <= confidence <= 1.0:
        out.confidence = float(confidence)
    elif confidence is not None:
        _discard("confidence", confidence)

    tags = _field(payload, "suggestedTags", "suggested_tags", "tags")
    if isinstance(tags, str):
        tags = [t for t in tags.split(",")]
    new_tags = _string_list(tags)
    if new_tags:
        out.suggested_tags = unique_lower([*out.suggested_tags, *new_tags])
    elif tags is not None:
        _discard("suggestedTags", tags)

    if not out.categories:
        out.categories = [Category.OTHER]
    if not out.main_topic:
        out.main_topic = out.categories[0].value
    if not out.summary:
        out.summary = out.title

    out.analyzed = True
    out.error = None
    out.source = AnalysisSource.MODEL
    return out
