from __future__ import annotations

import logging
import time
from typing import Callable

from bookmark_analyzer.models import CacheEntry, ContentAnalysis
from bookmark_analyzer.storage.base import KeyValueStore
from bookmark_analyzer.utils import canonicalize_url


logger = logging.getLogger(__name__)


DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


def _millis_clock() -> int:
    return int(time.time() * 1000)


class AnalysisCache:
    """URL-keyed analysis cache with time-based expiry.

    Entries are stored as ``{"analysis": <json>, "timestamp": <epoch ms>}``.
    Anything older than the TTL, or anything that no longer decodes, is
    evicted on read and reported as a miss.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] = _millis_clock,
    ) -> None:
        self._store = store
        self._ttl_ms = int(ttl_seconds) * 1000
        self._clock = clock

    @staticmethod
    def key_for(url: str) -> str:
        return canonicalize_url(url)

    async def get_entry(self, url: str) -> CacheEntry | None:
        key = self.key_for(url)
        raw = await self._store.get(key)
        if raw is None:
            return None

        try:
            stored_at = int(raw["timestamp"])
            analysis = ContentAnalysis.from_dict(raw["analysis"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("evicting undecodable cache entry %s: %s", key, e)
            await self._store.delete(key)
            return None

        if self._clock() - stored_at > self._ttl_ms:
            logger.debug("cache entry expired: %s", key)
            await self._store.delete(key)
            return None

        return CacheEntry(key=key, value=analysis, stored_at=stored_at)

    async def get(self, url: str) -> ContentAnalysis | None:
        entry = await self.get_entry(url)
        return entry.value if entry else None

    async def put(self, url: str, analysis: ContentAnalysis) -> None:
        await self._store.set(
            self.key_for(url),
            {"analysis": analysis.to_dict(), "timestamp": self._clock()},
        )

    async def clear(self) -> None:
        await self._store.clear()

    async def aclose(self) -> None:
        await self._store.aclose()
