"""Tests for the model HTTP client: probing, retry bound and error mapping."""

import asyncio

import httpx
import pytest

from conftest import CHAT_URL, GENERATE_URL, chat_reply, fast_client_config
from bookmark_analyzer.errors import ERROR_PARSE, ERROR_PROTOCOL, ERROR_TRANSPORT, ProtocolError, TransportError
from bookmark_analyzer.llm.client import LocalModelClient
from bookmark_analyzer.metrics.metrics import Metrics
from bookmark_analyzer.models import Dialect, EndpointCandidate


CHAT = EndpointCandidate(CHAT_URL, Dialect.CHAT)
GENERATE = EndpointCandidate(GENERATE_URL, Dialect.GENERATE)


def _client(handler, metrics=None, **overrides) -> LocalModelClient:
    return LocalModelClient(fast_client_config(**overrides), transport=httpx.MockTransport(handler), metrics=metrics)


class TestComplete:

    @pytest.mark.asyncio
    async def test_returns_text(self):
        client = _client(lambda request: httpx.Response(200, json=chat_reply("answer")))
        try:
            assert await client.complete(CHAT, "prompt") == "answer"
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_timeouts_retried_exactly_three_times(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        metrics = Metrics()
        client = _client(handler, metrics=metrics)
        try:
            with pytest.raises(TransportError):
                await client.complete(CHAT, "prompt")
        finally:
            await client.aclose()
        assert len(attempts) == 3
        assert metrics.value("model_calls_total") == 3
        assert metrics.value("model_failures_total", {"type": ERROR_TRANSPORT}) == 3

    @pytest.mark.asyncio
    async def test_slow_server_counts_as_failed_attempt(self):
        attempts = []

        async def slow(request):
            attempts.append(request)
            await asyncio.sleep(1)
            return httpx.Response(200, json=chat_reply("late"))

        client = _client(slow, timeout_seconds=0.05, max_attempts=2)
        try:
            with pytest.raises(TransportError):
                await client.complete(CHAT, "prompt")
        finally:
            await client.aclose()
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=chat_reply("second time"))

        client = _client(handler)
        try:
            assert await client.complete(CHAT, "prompt") == "second time"
        finally:
            await client.aclose()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_2xx_is_transport_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="busy")

        client = _client(handler)
        try:
            with pytest.raises(TransportError) as info:
                await client.complete(CHAT, "prompt")
        finally:
            await client.aclose()
        assert "HTTP 503" in info.value.detail
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_no_model_is_protocol_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": {"message": "No models loaded", "code": "model_not_found"}})

        client = _client(handler)
        try:
            with pytest.raises(ProtocolError):
                await client.complete(CHAT, "prompt")
        finally:
            await client.aclose()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_generate_dialect_request(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"response": "ok", "done": True})

        client = _client(handler)
        try:
            assert await client.complete(GENERATE, "prompt") == "ok"
        finally:
            await client.aclose()
        assert seen[0].url == httpx.URL(GENERATE_URL)


class TestProbe:

    @pytest.mark.asyncio
    async def test_ok(self):
        client = _client(lambda request: httpx.Response(200, json=chat_reply("Connected")))
        try:
            result = await client.probe(CHAT)
        finally:
            await client.aclose()
        assert result.ok

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        try:
            result = await client.probe(CHAT)
        finally:
            await client.aclose()
        assert not result.ok
        assert result.error_type == ERROR_TRANSPORT

    @pytest.mark.asyncio
    async def test_no_model_loaded(self):
        client = _client(lambda request: httpx.Response(404, json={"error": "model 'llama2' not found"}))
        try:
            result = await client.probe(GENERATE)
        finally:
            await client.aclose()
        assert not result.ok
        assert result.error_type == ERROR_PROTOCOL

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        client = _client(lambda request: httpx.Response(200, json=chat_reply("  ")))
        try:
            result = await client.probe(CHAT)
        finally:
            await client.aclose()
        assert not result.ok
        assert result.error_type == ERROR_PARSE
