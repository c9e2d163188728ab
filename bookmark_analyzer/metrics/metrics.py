from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server


logger = logging.getLogger(__name__)


class Metrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        r = self.registry

        self.analyses_total = Counter("analyses_total", "Completed analyses", ["source"], registry=r)
        self.cache_hits_total = Counter("cache_hits_total", "Analysis cache hits", registry=r)
        self.cache_misses_total = Counter("cache_misses_total", "Analysis cache misses", registry=r)

        self.model_calls_total = Counter("model_calls_total", "Model call attempts", registry=r)
        self.model_failures_total = Counter("model_failures_total", "Failed model call attempts", ["type"], registry=r)
        self.model_latency_seconds = Histogram(
            "model_latency_seconds",
            "Model call latency",
            buckets=(0.5, 1, 2, 5, 10, 20, 30, 60),
            registry=r,
        )

        self.endpoint_probes_total = Counter("endpoint_probes_total", "Endpoint probes", ["result"], registry=r)

    def start_server(self, bind: str, port: int) -> None:
        start_http_server(port, addr=bind, registry=self.registry)
        logger.info("metrics server started at %s:%s", bind, port)

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        found = self.registry.get_sample_value(name, labels or {})
        return found if found is not None else 0.0
