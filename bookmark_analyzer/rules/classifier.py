from __future__ import annotations

import logging
from dataclasses import dataclass

from bookmark_analyzer.models import AnalysisSource, Category, ContentAnalysis, ContentItem, Sentiment
from bookmark_analyzer.rules.loader import DEFAULT_RULES
from bookmark_analyzer.utils import unique_lower


logger = logging.getLogger(__name__)


@dataclass
class CompiledRules:
    raw: dict
    categories: list[tuple[Category, list[str]]]
    positive_words: list[str]
    negative_words: list[str]
    min_title_word_len: int


def _words(values) -> list[str]:
    return [str(v).casefold() for v in (values or []) if str(v).strip()]


def title_words(title: str, min_len: int) -> list[str]:
    out: list[str] = []
    for raw in (title or "").lower().split():
        word = "".join(ch for ch in raw if ch.isalnum())
        if len(word) >= min_len:
            out.append(word)
    return out


class RuleClassifier:
    """Keyword/heuristic classifier producing the same schema as the model path.

    Pure: the result depends only on the item, the optional context text and
    the keyword table given at construction.
    """

    def __init__(self, rules: dict | None = None):
        self._compiled = self._compile(rules if rules is not None else DEFAULT_RULES)

    @property
    def rules(self) -> dict:
        return self._compiled.raw

    def _compile(self, rules: dict) -> CompiledRules:
        categories: list[tuple[Category, list[str]]] = []
        for name, keywords in (rules.get("categories") or {}).items():
            try:
                category = Category(str(name).strip().lower())
            except ValueError:
                logger.warning("ignoring unknown category in rules: %s", name)
                continue
            categories.append((category, _words(keywords)))

        sentiment = rules.get("sentiment") or {}
        return CompiledRules(
            raw=rules,
            categories=categories,
            positive_words=_words(sentiment.get("positive")),
            negative_words=_words(sentiment.get("negative")),
            min_title_word_len=int(rules.get("min_title_word_len", 4)),
        )

    def categorize(self, hay: str) -> list[Category]:
        found = [cat for cat, keywords in self._compiled.categories if any(kw in hay for kw in keywords)]
        return found or [Category.OTHER]

    def sentiment(self, hay: str) -> Sentiment:
        c = self._compiled
        positive = sum(hay.count(w) for w in c.positive_words)
        negative = sum(hay.count(w) for w in c.negative_words)
        if positive > negative:
            return Sentiment.POSITIVE
        if negative > positive:
            return Sentiment.NEGATIVE
        return Sentiment.NEUTRAL

    def classify(self, item: ContentItem, context: str = "") -> ContentAnalysis:
        title = item.title or ""
        description = item.description or ""
        hay = "\n".join((title, description, item.url or "", context or "")).casefold()

        categories = self.categorize(hay)
        tags = unique_lower(
            [
                *sorted(item.existing_tags, key=str.lower),
                *(c.value for c in categories),
                *title_words(title, self._compiled.min_title_word_len),
            ]
        )

        return ContentAnalysis(
            summary=title,
            main_topic=categories[0].value,
            key_points=[description],
            categories=categories,
            sentiment=self.sentiment(hay),
            suggested_tags=tags,
            analyzed=True,
            error=None,
            title=title,
            description=description,
            source=AnalysisSource.RULES,
        )
