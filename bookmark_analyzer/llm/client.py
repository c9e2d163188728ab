from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from bookmark_analyzer.errors import (
    ERROR_PARSE,
    ERROR_PROTOCOL,
    ERROR_TRANSPORT,
    ProtocolError,
    TransportError,
    redact_detail,
)
from bookmark_analyzer.llm.dialects import ModelSettings, ProtocolAdapter, adapter_for, is_model_missing
from bookmark_analyzer.models import Dialect, EndpointCandidate, ProbeResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientConfig:
    settings: ModelSettings = field(default_factory=ModelSettings)
    timeout_seconds: float = 30.0
    probe_timeout_seconds: float = 5.0
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning("model call attempt %s failed: %s", state.attempt_number, exc)


class LocalModelClient:
    """HTTP client for a locally hosted model server in any known dialect."""

    def __init__(
        self,
        cfg: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        metrics=None,
    ):
        self._cfg = cfg
        self._metrics = metrics
        self._adapters: dict[Dialect, ProtocolAdapter] = {}
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(cfg.timeout_seconds),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def adapter(self, candidate: EndpointCandidate) -> ProtocolAdapter:
        adapter = self._adapters.get(candidate.dialect)
        if adapter is None:
            adapter = adapter_for(candidate.dialect, self._cfg.settings)
            self._adapters[candidate.dialect] = adapter
        return adapter

    async def _post(self, address: str, payload: dict, timeout: float) -> tuple[int, Any]:
        try:
            resp = await asyncio.wait_for(
                self._client.post(address, json=payload, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransportError(f"timed out after {timeout:g}s: {address}") from e
        except httpx.TransportError as e:
            raise TransportError(redact_detail(f"{address}: {str(e) or e.__class__.__name__}")) from e

        try:
            data = resp.json()
        except ValueError:
            data = resp.text
        return resp.status_code, data

    async def probe(self, candidate: EndpointCandidate) -> ProbeResult:
        adapter = self.adapter(candidate)
        try:
            status, data = await self._post(candidate.address, adapter.build_probe(), self._cfg.probe_timeout_seconds)
        except TransportError as e:
            return ProbeResult(ok=False, error_type=ERROR_TRANSPORT, detail=e.detail)

        if is_model_missing(status, data):
            return ProbeResult(ok=False, error_type=ERROR_PROTOCOL, detail=f"no model loaded at {candidate.address}")
        if not 200 <= status < 300:
            return ProbeResult(ok=False, error_type=ERROR_TRANSPORT, detail=f"HTTP {status} from {candidate.address}")

        text = adapter.extract_text(data).strip()
        if not text:
            return ProbeResult(ok=False, error_type=ERROR_PARSE, detail=f"empty reply from {candidate.address}")
        return ProbeResult(ok=True)

    async def _complete_once(self, candidate: EndpointCandidate, adapter: ProtocolAdapter, payload: dict) -> str:
        if self._metrics is not None:
            self._metrics.model_calls_total.inc()
        started = time.perf_counter()
        try:
            status, data = await self._post(candidate.address, payload, self._cfg.timeout_seconds)
        except TransportError:
            if self._metrics is not None:
                self._metrics.model_failures_total.labels(type=ERROR_TRANSPORT).inc()
            raise
        finally:
            if self._metrics is not None:
                self._metrics.model_latency_seconds.observe(time.perf_counter() - started)

        if is_model_missing(status, data):
            if self._metrics is not None:
                self._metrics.model_failures_total.labels(type=ERROR_PROTOCOL).inc()
            raise ProtocolError(f"no model loaded at {candidate.address}")
        if not 200 <= status < 300:
            if self._metrics is not None:
                self._metrics.model_failures_total.labels(type=ERROR_TRANSPORT).inc()
            body = data if isinstance(data, str) else str(data)
            raise TransportError(redact_detail(f"HTTP {status} from {candidate.address}: {body}"))

        return adapter.extract_text(data)

    async def complete(self, candidate: EndpointCandidate, prompt: str) -> str:
        """Send ``prompt`` and return the raw model text.

        Transport failures are retried up to ``max_attempts`` times with a
        fixed delay; each attempt has its own timeout. ``ProtocolError`` is
        raised immediately.
        """
        adapter = self.adapter(candidate)
        payload = adapter.build_request(prompt)

        text = ""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, int(self._cfg.max_attempts))),
            wait=wait_fixed(max(0.0, float(self._cfg.retry_delay_seconds))),
            retry=retry_if_exception_type(TransportError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                logger.debug(
                    "calling %s (%s) attempt %s/%s",
                    candidate.address,
                    candidate.dialect.value,
                    attempt.retry_state.attempt_number,
                    self._cfg.max_attempts,
                )
                text = await self._complete_once(candidate, adapter, payload)
        return text
