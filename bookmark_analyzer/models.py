from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from bookmark_analyzer.utils import now_utc


class Category(str, Enum):
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    FINANCE = "finance"
    SCIENCE = "science"
    AI = "ai"
    DEVELOPMENT = "development"
    ENTERTAINMENT = "entertainment"
    MEMES = "memes"
    HEALTH = "health"
    NEWS = "news"
    SOCIAL = "social"
    EDUCATION = "education"
    OTHER = "other"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ContentValue(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContentKind(str, Enum):
    VIDEO = "video"
    SOCIAL_POST = "social_post"
    CODE_REPOSITORY = "code_repository"
    GENERAL = "general"


class AnalysisSource(str, Enum):
    MODEL = "model"
    RULES = "rules"
    HYBRID = "hybrid"


class Dialect(str, Enum):
    CHAT = "chat"
    COMPLETION = "completion"
    GENERATE = "generate"


@dataclass(frozen=True)
class ContentItem:
    title: str
    url: str
    description: str = ""
    existing_tags: frozenset[str] = frozenset()

    @classmethod
    def from_dict(cls, data: dict) -> "ContentItem":
        tags = data.get("existing_tags") or data.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        return cls(
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            description=str(data.get("description") or ""),
            existing_tags=frozenset(str(t) for t in tags),
        )


@dataclass(frozen=True)
class ReasoningTrace:
    initial: str
    refined: str = ""


@dataclass
class ContentAnalysis:
    summary: str = ""
    main_topic: str = ""
    key_points: list[str] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    suggested_tags: list[str] = field(default_factory=list)
    content_value: ContentValue | None = None
    suggested_folder: str | None = None
    confidence: float | None = None
    reasoning_trace: ReasoningTrace | None = None
    analyzed: bool = False
    error: str | None = None
    produced_at: datetime = field(default_factory=now_utc)

    title: str = ""
    description: str = ""
    content_kind: ContentKind = ContentKind.GENERAL
    source: AnalysisSource = AnalysisSource.RULES

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "main_topic": self.main_topic,
            "key_points": list(self.key_points),
            "categories": [c.value for c in self.categories],
            "sentiment": self.sentiment.value,
            "suggested_tags": list(self.suggested_tags),
            "content_value": self.content_value.value if self.content_value else None,
            "suggested_folder": self.suggested_folder,
            "confidence": self.confidence,
            "reasoning_trace": (
                {"initial": self.reasoning_trace.initial, "refined": self.reasoning_trace.refined}
                if self.reasoning_trace
                else None
            ),
            "analyzed": self.analyzed,
            "error": self.error,
            "produced_at": self.produced_at.isoformat(),
            "title": self.title,
            "description": self.description,
            "content_kind": self.content_kind.value,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContentAnalysis":
        """Rebuild an analysis from its JSON form.

        Raises ValueError (or TypeError/KeyError wrapped as ValueError) when the
        data does not describe a valid analysis; callers treat that as a miss.
        """
        if not isinstance(data, dict):
            raise ValueError("analysis must be a mapping")
        try:
            trace = data.get("reasoning_trace")
            content_value = data.get("content_value")
            confidence = data.get("confidence")
            return cls(
                summary=str(data.get("summary") or ""),
                main_topic=str(data.get("main_topic") or ""),
                key_points=[str(x) for x in data.get("key_points") or []],
                categories=[Category(c) for c in data.get("categories") or []],
                sentiment=Sentiment(data.get("sentiment") or Sentiment.NEUTRAL.value),
                suggested_tags=[str(x) for x in data.get("suggested_tags") or []],
                content_value=ContentValue(content_value) if content_value else None,
                suggested_folder=data.get("suggested_folder"),
                confidence=float(confidence) if confidence is not None else None,
                reasoning_trace=(
                    ReasoningTrace(initial=str(trace.get("initial") or ""), refined=str(trace.get("refined") or ""))
                    if isinstance(trace, dict)
                    else None
                ),
                analyzed=bool(data.get("analyzed")),
                error=data.get("error"),
                produced_at=datetime.fromisoformat(data["produced_at"]) if data.get("produced_at") else now_utc(),
                title=str(data.get("title") or ""),
                description=str(data.get("description") or ""),
                content_kind=ContentKind(data.get("content_kind") or ContentKind.GENERAL.value),
                source=AnalysisSource(data.get("source") or AnalysisSource.RULES.value),
            )
        except (TypeError, KeyError, AttributeError) as e:
            raise ValueError(f"invalid analysis data: {e}") from e


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: ContentAnalysis
    stored_at: int


@dataclass(frozen=True)
class EndpointCandidate:
    address: str
    dialect: Dialect


@dataclass
class ConnectionState:
    working_endpoint: EndpointCandidate | None = None
    last_error: str | None = None
    resolved: bool = False
    disabled: bool = False


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    message: str
    endpoint: EndpointCandidate | None = None


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    error_type: str | None = None
    detail: str = ""


@dataclass(frozen=True)
class RepoMetadata:
    description: str | None
    primary_language: str | None
    name: str | None = None


@dataclass(frozen=True)
class VideoMetadata:
    title: str | None
    description: str | None
