"""Tests for the analysis orchestrator: model path, fallbacks, cache and batching."""

import json

import httpx
import pytest

from conftest import FakeModelServer, chat_reply, is_probe, make_engine
from bookmark_analyzer.metrics.metrics import Metrics
from bookmark_analyzer.models import AnalysisSource, Category, ContentItem, ContentKind, Sentiment
from bookmark_analyzer.rules.classifier import RuleClassifier
from bookmark_analyzer.storage.base import MemoryStore


GOOD_REPLY = (
    "<think>It is an introductory machine learning article.</think>\n"
    "```json\n"
    + json.dumps(
        {
            "summary": "An introduction to neural networks.",
            "mainTopic": "Neural networks",
            "keyPoints": ["neurons", "layers", "training"],
            "categories": ["ai", "education"],
            "sentiment": "positive",
            "contentValue": "high",
            "suggestedTags": ["neural networks", "deep learning"],
            "suggestedFolder": "AI",
            "confidence": 0.85,
        }
    )
    + "\n```"
)


def _unreachable(request):
    raise httpx.ConnectError("refused", request=request)


class BrokenClassifier(RuleClassifier):
    def classify(self, item, context=""):
        raise RuntimeError("keyword table exploded")


class BrokenStore(MemoryStore):
    async def get(self, key):
        raise OSError("disk gone")

    async def set(self, key, value):
        raise OSError("disk gone")


class TestModelPath:

    @pytest.mark.asyncio
    async def test_valid_reply(self, nn_item):
        server = FakeModelServer(GOOD_REPLY)
        engine = make_engine(server)
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.source == AnalysisSource.MODEL
        assert result.summary == "An introduction to neural networks."
        assert result.categories == [Category.AI, Category.EDUCATION]
        assert result.sentiment == Sentiment.POSITIVE
        assert result.confidence == 0.85
        assert result.reasoning_trace.initial == "It is an introductory machine learning article."
        assert result.analyzed is True
        assert result.error is None
        assert server.probes == 1
        assert server.calls == 1

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self, nn_item):
        server = FakeModelServer(GOOD_REPLY)
        metrics = Metrics()
        engine = make_engine(server, metrics=metrics)
        try:
            first = await engine.analyze(nn_item)
            second = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert second == first
        assert server.calls == 1
        assert metrics.value("cache_hits_total") == 1
        assert metrics.value("cache_misses_total") == 1
        assert metrics.value("analyses_total", {"source": "model"}) == 1

    @pytest.mark.asyncio
    async def test_reasoning_without_json_is_hybrid(self, nn_item):
        engine = make_engine(FakeModelServer("<think>Looks like an AI primer but I ran out of tokens"))
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.source == AnalysisSource.HYBRID
        assert result.reasoning_trace.initial == "Looks like an AI primer but I ran out of tokens"
        assert Category.AI in result.categories
        assert result.summary == "Intro to Neural Networks"
        assert result.analyzed is True

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back_to_rules(self, nn_item):
        engine = make_engine(FakeModelServer("Sorry, I cannot help with that."))
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.source == AnalysisSource.RULES
        assert result.reasoning_trace is None
        assert Category.AI in result.categories

    @pytest.mark.asyncio
    async def test_repository_hints_are_merged(self):
        reply = '```json\n{"summary": "A web framework.", "categories": ["programming"], "suggestedTags": ["python"]}\n```'
        engine = make_engine(FakeModelServer(reply))
        item = ContentItem(title="flask", url="https://github.com/pallets/flask", existing_tags=frozenset({"web"}))
        try:
            result = await engine.analyze(item)
        finally:
            await engine.aclose()
        assert result.content_kind == ContentKind.CODE_REPOSITORY
        assert result.categories == [Category.DEVELOPMENT, Category.TECHNOLOGY]
        assert result.main_topic == "Software Development"
        assert result.suggested_tags == ["web", "github", "repository", "code", "python"]


class TestFallbacks:

    @pytest.mark.asyncio
    async def test_no_model_scenario(self, nn_item):
        engine = make_engine(_unreachable)
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert Category.AI in result.categories
        assert result.sentiment == Sentiment.NEUTRAL
        assert result.analyzed is True
        assert result.source == AnalysisSource.RULES

    @pytest.mark.asyncio
    async def test_transport_failure_after_retries(self, nn_item):
        calls = []

        def handler(request):
            if is_probe(request):
                return httpx.Response(200, json=chat_reply("Connected"))
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        engine = make_engine(handler)
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert len(calls) == 3
        assert result.source == AnalysisSource.RULES
        assert result.analyzed is True

    @pytest.mark.asyncio
    async def test_no_model_loaded_marks_endpoint_unusable(self, nn_item):
        calls = []

        def handler(request):
            if is_probe(request):
                return httpx.Response(200, json=chat_reply("Connected"))
            calls.append(request)
            return httpx.Response(400, json={"error": {"message": "No models loaded"}})

        engine = make_engine(handler)
        other = ContentItem(title="Another page", url="https://example.com/other")
        try:
            first = await engine.analyze(nn_item)
            second = await engine.analyze(other)
        finally:
            await engine.aclose()
        assert len(calls) == 1
        assert first.source == AnalysisSource.RULES
        assert second.source == AnalysisSource.RULES
        assert engine.resolver.state.working_endpoint is None

    @pytest.mark.asyncio
    async def test_unexpected_error_still_answers(self, nn_item):
        engine = make_engine(FakeModelServer(GOOD_REPLY))

        async def explode(item):
            raise RuntimeError("enrichment bug")

        engine.enricher.enrich = explode
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.analyzed is True
        assert Category.AI in result.categories

    @pytest.mark.asyncio
    async def test_total_failure_returns_unanalyzed_result(self, nn_item):
        engine = make_engine(_unreachable, classifier=BrokenClassifier())
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.analyzed is False
        assert result.categories == [Category.OTHER]
        assert "keyword table exploded" in result.error

    @pytest.mark.asyncio
    async def test_unanalyzed_result_is_not_cached(self, nn_item, memory_store):
        engine = make_engine(_unreachable, classifier=BrokenClassifier(), store=memory_store)
        try:
            await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_cache_failures_are_ignored(self, nn_item):
        engine = make_engine(FakeModelServer(GOOD_REPLY), store=BrokenStore())
        try:
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.source == AnalysisSource.MODEL


class TestBatch:

    @pytest.mark.asyncio
    async def test_progress_after_each_group(self):
        items = [ContentItem(title=f"Item {i}", url=f"https://example.com/{i}") for i in range(7)]
        progress = []
        engine = make_engine(_unreachable)
        try:
            results = await engine.analyze_batch(items, on_progress=lambda done, total: progress.append((done, total)))
        finally:
            await engine.aclose()
        assert progress == [(3, 7), (6, 7), (7, 7)]
        assert set(results) == {item.url for item in items}
        assert all(r.analyzed for r in results.values())

    @pytest.mark.asyncio
    async def test_async_progress_callback(self):
        items = [ContentItem(title=f"Item {i}", url=f"https://example.com/{i}") for i in range(4)]
        progress = []

        async def on_progress(done, total):
            progress.append(done)

        engine = make_engine(_unreachable, batch_size=2)
        try:
            await engine.analyze_batch(items, on_progress=on_progress)
        finally:
            await engine.aclose()
        assert progress == [2, 4]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        engine = make_engine(_unreachable)
        try:
            assert await engine.analyze_batch([]) == {}
        finally:
            await engine.aclose()


class TestControls:

    @pytest.mark.asyncio
    async def test_check_connection_reprobes(self):
        server = FakeModelServer(GOOD_REPLY)
        engine = make_engine(server)
        try:
            first = await engine.check_connection()
            second = await engine.check_connection()
        finally:
            await engine.aclose()
        assert first.connected and second.connected
        assert server.probes == 2

    @pytest.mark.asyncio
    async def test_check_connection_reports_failure(self):
        engine = make_engine(_unreachable)
        try:
            status = await engine.check_connection()
        finally:
            await engine.aclose()
        assert not status.connected
        assert "No model server reachable" in status.message

    @pytest.mark.asyncio
    async def test_disable_model_uses_rules_only(self, nn_item):
        server = FakeModelServer(GOOD_REPLY)
        engine = make_engine(server)
        try:
            engine.disable_model()
            result = await engine.analyze(nn_item)
            status = await engine.check_connection()
        finally:
            await engine.aclose()
        assert result.source == AnalysisSource.RULES
        assert server.probes == 0
        assert not status.connected

    @pytest.mark.asyncio
    async def test_enable_model_after_disable(self, nn_item):
        server = FakeModelServer(GOOD_REPLY)
        engine = make_engine(server)
        try:
            engine.disable_model()
            engine.enable_model()
            result = await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert result.source == AnalysisSource.MODEL

    @pytest.mark.asyncio
    async def test_clear_cache(self, nn_item, memory_store):
        server = FakeModelServer(GOOD_REPLY)
        engine = make_engine(server, store=memory_store)
        try:
            await engine.analyze(nn_item)
            await engine.clear_cache()
            await engine.analyze(nn_item)
        finally:
            await engine.aclose()
        assert server.calls == 2
