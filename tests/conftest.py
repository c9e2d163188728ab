"""
Shared pytest fixtures for bookmark_analyzer tests.

Model servers and platform APIs are faked with ``httpx.MockTransport``;
no test touches the network.
"""

import json

import httpx
import pytest

from bookmark_analyzer.analysis.engine import ContentAnalysisEngine
from bookmark_analyzer.cache import AnalysisCache
from bookmark_analyzer.enrichment.service import ContentEnricher
from bookmark_analyzer.llm.client import ClientConfig, LocalModelClient
from bookmark_analyzer.llm.resolver import EndpointResolver
from bookmark_analyzer.metrics.metrics import Metrics
from bookmark_analyzer.models import ContentItem, Dialect, EndpointCandidate
from bookmark_analyzer.rules.classifier import RuleClassifier
from bookmark_analyzer.storage.base import MemoryStore


CHAT_URL = "http://model.test/v1/chat/completions"
GENERATE_URL = "http://model.test/api/generate"


def chat_reply(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def is_probe(request: httpx.Request) -> bool:
    body = json.loads(request.content)
    if "messages" in body:
        return "Connected" in body["messages"][-1]["content"]
    return "Connected" in body.get("prompt", "")


class FakeModelServer:
    """Chat-dialect server: answers probes with "Connected", analyses with ``reply``."""

    def __init__(self, reply: str = "", status: int = 200):
        self.reply = reply
        self.status = status
        self.probes = 0
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if is_probe(request):
            self.probes += 1
            return httpx.Response(200, json=chat_reply("Connected"))
        self.calls += 1
        return httpx.Response(self.status, json=chat_reply(self.reply))


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance_days(self, days: float) -> None:
        self.now_ms += int(days * 24 * 60 * 60 * 1000)


def fast_client_config(**overrides) -> ClientConfig:
    values = dict(timeout_seconds=1.0, probe_timeout_seconds=1.0, max_attempts=3, retry_delay_seconds=0.0)
    values.update(overrides)
    return ClientConfig(**values)


def make_engine(handler, candidates=None, store=None, clock=None, metrics=None, **kwargs) -> ContentAnalysisEngine:
    metrics = metrics or Metrics()
    client = LocalModelClient(fast_client_config(), transport=httpx.MockTransport(handler), metrics=metrics)
    if candidates is None:
        candidates = [EndpointCandidate(CHAT_URL, Dialect.CHAT)]
    cache_kwargs = {"clock": clock} if clock is not None else {}
    kwargs.setdefault("classifier", RuleClassifier())
    kwargs.setdefault("enricher", ContentEnricher())
    kwargs.setdefault("batch_pause_seconds", 0.0)
    return ContentAnalysisEngine(
        cache=AnalysisCache(store if store is not None else MemoryStore(), **cache_kwargs),
        client=client,
        resolver=EndpointResolver(client, candidates, metrics=metrics),
        metrics=metrics,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def nn_item():
    return ContentItem(
        title="Intro to Neural Networks",
        url="https://example.com/nn",
        description="A primer on deep learning",
    )
