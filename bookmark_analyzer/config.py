from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

from bookmark_analyzer.models import Dialect, EndpointCandidate


DEFAULT_ENDPOINTS: tuple[EndpointCandidate, ...] = (
    EndpointCandidate("http://localhost:1234/v1/chat/completions", Dialect.CHAT),
    EndpointCandidate("http://localhost:1234/v1/completions", Dialect.COMPLETION),
    EndpointCandidate("http://localhost:11434/api/generate", Dialect.GENERATE),
    EndpointCandidate("http://localhost:5000/v1/completions", Dialect.COMPLETION),
)


def _env_str(name: str, default: str | None = None) -> str:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return value


def _env_int(name: str, default: int | None = None) -> int:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return int(value)


def _env_float(name: str, default: float | None = None) -> float:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return float(value)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip().lower()
    return value in {"1", "true", "yes", "y", "on"}


def parse_endpoints(raw: str) -> tuple[EndpointCandidate, ...]:
    """Parse ``dialect=url,dialect=url`` into an ordered candidate list."""
    out: list[EndpointCandidate] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        dialect, sep, address = part.partition("=")
        if not sep or not address.strip():
            raise RuntimeError(f"Invalid LLM_ENDPOINTS entry (expected dialect=url): {part}")
        try:
            out.append(EndpointCandidate(address.strip(), Dialect(dialect.strip().lower())))
        except ValueError as e:
            raise RuntimeError(f"Unknown dialect in LLM_ENDPOINTS: {dialect}") from e
    return tuple(out)


def _env_endpoints(name: str, default: tuple[EndpointCandidate, ...]) -> tuple[EndpointCandidate, ...]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return parse_endpoints(value)


@dataclass(frozen=True)
class Config:
    # Model server
    llm_enabled: bool
    llm_endpoints: tuple[EndpointCandidate, ...]
    llm_model: str
    llm_generate_model: str
    llm_max_tokens: int
    llm_temperature: float
    llm_timeout_seconds: float
    llm_probe_timeout_seconds: float
    llm_max_attempts: int
    llm_retry_delay_seconds: float

    # Batch
    batch_size: int
    batch_pause_seconds: float

    # Cache
    cache_backend: str
    cache_path: Path
    cache_ttl_days: int

    # Rules
    rules_overrides_path: Path

    # Enrichment
    enrichment_enabled: bool
    enrichment_timeout_seconds: float
    github_token: str

    # Metrics
    metrics_enabled: bool
    metrics_bind: str
    metrics_port: int

    # Logging
    log_level: str
    log_file: str


def load_config() -> Config:
    return Config(
        llm_enabled=_env_bool("LLM_ENABLED", True),
        llm_endpoints=_env_endpoints("LLM_ENDPOINTS", DEFAULT_ENDPOINTS),
        llm_model=_env_str("LLM_MODEL", "local-model"),
        llm_generate_model=_env_str("LLM_GENERATE_MODEL", "llama2"),
        llm_max_tokens=_env_int("LLM_MAX_TOKENS", 1500),
        llm_temperature=_env_float("LLM_TEMPERATURE", 0.1),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 30.0),
        llm_probe_timeout_seconds=_env_float("LLM_PROBE_TIMEOUT_SECONDS", 5.0),
        llm_max_attempts=_env_int("LLM_MAX_ATTEMPTS", 3),
        llm_retry_delay_seconds=_env_float("LLM_RETRY_DELAY_SECONDS", 1.0),
        batch_size=_env_int("BATCH_SIZE", 3),
        batch_pause_seconds=_env_float("BATCH_PAUSE_SECONDS", 1.0),
        cache_backend=_env_str("CACHE_BACKEND", "sqlite").strip().lower(),
        cache_path=Path(_env_str("CACHE_PATH", "data/analysis_cache.db")),
        cache_ttl_days=_env_int("CACHE_TTL_DAYS", 7),
        rules_overrides_path=Path(_env_str("RULES_OVERRIDES_PATH", "rules/overrides.yaml")),
        enrichment_enabled=_env_bool("ENRICHMENT_ENABLED", True),
        enrichment_timeout_seconds=_env_float("ENRICHMENT_TIMEOUT_SECONDS", 10.0),
        github_token=_env_str("GITHUB_TOKEN", ""),
        metrics_enabled=_env_bool("METRICS_ENABLED", False),
        metrics_bind=_env_str("METRICS_BIND", "127.0.0.1"),
        metrics_port=_env_int("METRICS_PORT", 9109),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        log_file=_env_str("LOG_FILE", ""),
    )
