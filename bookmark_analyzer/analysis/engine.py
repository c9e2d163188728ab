from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable

from bookmark_analyzer.analysis.merge import merge_model_payload, normalize_categories
from bookmark_analyzer.analysis.prompts import build_prompt
from bookmark_analyzer.cache import AnalysisCache
from bookmark_analyzer.config import Config
from bookmark_analyzer.enrichment.fetcher import MetadataFetcher
from bookmark_analyzer.enrichment.service import ContentEnricher, EnrichedContent
from bookmark_analyzer.enrichment.urls import detect_content_kind
from bookmark_analyzer.errors import ProtocolError, TransportError
from bookmark_analyzer.llm.client import ClientConfig, LocalModelClient
from bookmark_analyzer.llm.dialects import ModelSettings
from bookmark_analyzer.llm.parser import parse_response
from bookmark_analyzer.llm.resolver import EndpointResolver
from bookmark_analyzer.metrics.metrics import Metrics
from bookmark_analyzer.models import (
    AnalysisSource,
    Category,
    ConnectionStatus,
    ContentAnalysis,
    ContentItem,
    ReasoningTrace,
)
from bookmark_analyzer.rules.classifier import RuleClassifier
from bookmark_analyzer.rules.loader import load_rules
from bookmark_analyzer.storage.base import KeyValueStore, MemoryStore
from bookmark_analyzer.storage.db import SqliteStore
from bookmark_analyzer.storage.files import JsonFileStore
from bookmark_analyzer.utils import unique_lower


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[int, int], Any]


class ContentAnalysisEngine:
    """Produces a ``ContentAnalysis`` for any bookmark, model or no model.

    Order of work for one item: cache lookup, endpoint resolution, model
    call (with bounded retry), response parsing, field validation, cache
    write. Any failure along the model path ends in the rule classifier;
    ``analyze()`` never raises.
    """

    def __init__(
        self,
        cache: AnalysisCache,
        client: LocalModelClient,
        resolver: EndpointResolver,
        classifier: RuleClassifier | None = None,
        enricher: ContentEnricher | None = None,
        metrics: Metrics | None = None,
        batch_size: int = 3,
        batch_pause_seconds: float = 1.0,
    ):
        self.cache = cache
        self.client = client
        self.resolver = resolver
        self.classifier = classifier or RuleClassifier()
        self.enricher = enricher or ContentEnricher()
        self.metrics = metrics
        self.batch_size = max(1, int(batch_size))
        self.batch_pause_seconds = max(0.0, float(batch_pause_seconds))

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.enricher.aclose()
        await self.cache.aclose()

    # --- single item ---------------------------------------------------

    async def analyze(self, item: ContentItem) -> ContentAnalysis:
        cached = await self._cache_get(item)
        if cached is not None:
            return cached

        try:
            result = await self._analyze_uncached(item)
        except Exception as e:
            logger.exception("analysis pipeline failed for %s", item.url)
            result = self._last_resort(item, e)

        if result.analyzed:
            await self._cache_put(item, result)
        if self.metrics is not None:
            self.metrics.analyses_total.labels(source=result.source.value).inc()
        return result

    async def _cache_get(self, item: ContentItem) -> ContentAnalysis | None:
        try:
            cached = await self.cache.get(item.url)
        except Exception as e:
            logger.warning("cache read failed for %s: %s", item.url, e)
            cached = None
        if self.metrics is not None:
            if cached is not None:
                self.metrics.cache_hits_total.inc()
            else:
                self.metrics.cache_misses_total.inc()
        if cached is not None:
            logger.debug("cache hit: %s", item.url)
        return cached

    async def _cache_put(self, item: ContentItem, result: ContentAnalysis) -> None:
        try:
            await self.cache.put(item.url, result)
        except Exception as e:
            logger.warning("cache write failed for %s: %s", item.url, e)

    async def _analyze_uncached(self, item: ContentItem) -> ContentAnalysis:
        enriched = await self.enricher.enrich(item)

        endpoint = await self.resolver.resolve()
        if endpoint is None:
            logger.info(
                "no model endpoint (%s); rule-based analysis for %s",
                self.resolver.state.last_error or "not connected",
                item.url,
            )
            return self._rules(item, enriched)

        try:
            raw = await self.client.complete(endpoint, build_prompt(enriched))
        except ProtocolError as e:
            self.resolver.mark_unusable(endpoint, e.detail)
            logger.info("model unavailable (%s); rule-based analysis for %s", e.detail, item.url)
            return self._rules(item, enriched)
        except TransportError as e:
            logger.info("model call failed (%s); rule-based analysis for %s", e.detail, item.url)
            return self._rules(item, enriched)

        parsed = parse_response(raw)
        if parsed.payload is not None:
            result = merge_model_payload(self._seed(item, enriched), parsed.payload)
            if parsed.reasoning:
                result.reasoning_trace = ReasoningTrace(initial=parsed.reasoning)
            return self._decorate(result, enriched)

        if parsed.reasoning:
            logger.info("model reply had reasoning but no JSON; filling fields from rules for %s", item.url)
            result = self._rules(item, enriched)
            result.reasoning_trace = ReasoningTrace(initial=parsed.reasoning)
            result.source = AnalysisSource.HYBRID
            return result

        logger.info("model reply had no usable JSON; rule-based analysis for %s", item.url)
        return self._rules(item, enriched)

    def _seed(self, item: ContentItem, enriched: EnrichedContent) -> ContentAnalysis:
        return ContentAnalysis(
            main_topic=enriched.hint_main_topic or "",
            suggested_tags=unique_lower([*sorted(item.existing_tags, key=str.lower), *enriched.hint_tags]),
            title=enriched.title,
            description=enriched.description,
            content_kind=enriched.kind,
        )

    def _rules(self, item: ContentItem, enriched: EnrichedContent) -> ContentAnalysis:
        # metadata only; the prompt framing would itself match keywords
        context = " ".join(t for t in (enriched.title, enriched.description) if t)
        result = self.classifier.classify(item, context=context)
        if enriched.hint_main_topic:
            result.main_topic = enriched.hint_main_topic
        return self._decorate(result, enriched)

    @staticmethod
    def _decorate(result: ContentAnalysis, enriched: EnrichedContent) -> ContentAnalysis:
        result.categories = normalize_categories([*result.categories, *enriched.hint_categories]) or [Category.OTHER]
        result.suggested_tags = unique_lower([*result.suggested_tags, *enriched.hint_tags])
        result.title = enriched.title
        result.description = enriched.description
        result.content_kind = enriched.kind
        return result

    def _last_resort(self, item: ContentItem, exc: Exception) -> ContentAnalysis:
        try:
            result = self.classifier.classify(item)
            result.content_kind = detect_content_kind(item.url)
            return result
        except Exception as e:
            logger.exception("rule classifier failed for %s", item.url)
            return ContentAnalysis(
                summary=item.title,
                categories=[Category.OTHER],
                main_topic=Category.OTHER.value,
                analyzed=False,
                error=f"{exc.__class__.__name__}: {exc}; rules: {e.__class__.__name__}: {e}",
                title=item.title,
                description=item.description,
            )

    # --- batch ---------------------------------------------------------

    async def analyze_batch(
        self,
        items: Iterable[ContentItem],
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, ContentAnalysis]:
        """Analyse items in small concurrent groups.

        ``on_progress(processed, total)`` runs after each group and may be a
        plain function or a coroutine function. Results are keyed by URL.
        """
        items = list(items)
        total = len(items)
        results: dict[str, ContentAnalysis] = {}

        for start in range(0, total, self.batch_size):
            group = items[start : start + self.batch_size]
            analyses = await asyncio.gather(*(self.analyze(item) for item in group))
            for item, analysis in zip(group, analyses):
                results[item.url] = analysis

            processed = start + len(group)
            logger.info("batch progress %s/%s", processed, total)
            if on_progress is not None:
                maybe = on_progress(processed, total)
                if inspect.isawaitable(maybe):
                    await maybe

            if processed < total and self.batch_pause_seconds > 0:
                await asyncio.sleep(self.batch_pause_seconds)

        return results

    # --- connection ----------------------------------------------------

    async def check_connection(self) -> ConnectionStatus:
        if not self.resolver.state.disabled:
            self.resolver.invalidate()
            await self.resolver.resolve()
        return self.resolver.status()

    def disable_model(self) -> None:
        self.resolver.disable()

    def enable_model(self) -> None:
        self.resolver.enable()

    async def clear_cache(self) -> None:
        await self.cache.clear()
        logger.info("analysis cache cleared")


def build_store(config: Config) -> KeyValueStore:
    backend = config.cache_backend
    if backend == "sqlite":
        return SqliteStore(config.cache_path)
    if backend == "json":
        path = config.cache_path
        if path.suffix != ".json":
            path = path.with_suffix(".json")
        return JsonFileStore(path)
    if backend == "memory":
        return MemoryStore()
    raise RuntimeError(f"Unknown CACHE_BACKEND: {backend}")


def build_engine(config: Config, transport=None, fetcher_transport=None) -> ContentAnalysisEngine:
    metrics = Metrics()
    if config.metrics_enabled:
        metrics.start_server(config.metrics_bind, config.metrics_port)

    cache = AnalysisCache(build_store(config), ttl_seconds=config.cache_ttl_days * 24 * 60 * 60)

    client = LocalModelClient(
        ClientConfig(
            settings=ModelSettings(
                model=config.llm_model,
                generate_model=config.llm_generate_model,
                max_tokens=config.llm_max_tokens,
                temperature=config.llm_temperature,
            ),
            timeout_seconds=config.llm_timeout_seconds,
            probe_timeout_seconds=config.llm_probe_timeout_seconds,
            max_attempts=config.llm_max_attempts,
            retry_delay_seconds=config.llm_retry_delay_seconds,
        ),
        transport=transport,
        metrics=metrics,
    )
    resolver = EndpointResolver(client, config.llm_endpoints, metrics=metrics)
    if not config.llm_enabled:
        resolver.disable()

    fetcher = None
    if config.enrichment_enabled:
        fetcher = MetadataFetcher(
            timeout_seconds=config.enrichment_timeout_seconds,
            github_token=config.github_token,
            transport=fetcher_transport,
        )

    rules = load_rules(config.rules_overrides_path)

    return ContentAnalysisEngine(
        cache=cache,
        client=client,
        resolver=resolver,
        classifier=RuleClassifier(rules),
        enricher=ContentEnricher(fetcher, enabled=config.enrichment_enabled),
        metrics=metrics,
        batch_size=config.batch_size,
        batch_pause_seconds=config.batch_pause_seconds,
    )
