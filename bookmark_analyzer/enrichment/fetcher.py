from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from bookmark_analyzer.errors import redact_detail
from bookmark_analyzer.models import RepoMetadata, VideoMetadata


logger = logging.getLogger(__name__)


GITHUB_API_URL = "https://api.github.com"
YOUTUBE_OEMBED_URL = "https://www.youtube.com/oembed"


class MetadataFetcher:
    """Read-only lookups against public platform APIs.

    Every method answers ``None`` on any failure; callers treat metadata as
    an optional enrichment.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        github_token: str = "",
        user_agent: str = "bookmark-analyzer",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self._github_headers = {"Accept": "application/vnd.github+json"}
        if github_token:
            self._github_headers["Authorization"] = f"Bearer {github_token}"
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(2),
        wait=wait_exponential_jitter(initial=0.5, max=4),
        reraise=True,
    )
    async def _get(self, url: str, params: dict | None = None, headers: dict | None = None) -> httpx.Response:
        return await self._client.get(url, params=params, headers=headers)

    async def _get_json(self, url: str, params: dict | None = None, headers: dict | None = None) -> dict[str, Any] | None:
        try:
            resp = await self._get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("metadata fetch failed %s: %s", url, redact_detail(str(e) or e.__class__.__name__))
            return None
        if resp.status_code != 200:
            logger.warning("metadata fetch %s returned HTTP %s", url, resp.status_code)
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("metadata fetch %s returned non-JSON body", url)
            return None
        return data if isinstance(data, dict) else None

    async def fetch_repo_metadata(self, owner: str, name: str) -> RepoMetadata | None:
        data = await self._get_json(f"{GITHUB_API_URL}/repos/{owner}/{name}", headers=self._github_headers)
        if data is None:
            return None
        return RepoMetadata(
            description=data.get("description") or None,
            primary_language=data.get("language") or None,
            name=data.get("name") or None,
        )

    async def fetch_video_metadata(self, video_id: str) -> VideoMetadata | None:
        data = await self._get_json(
            YOUTUBE_OEMBED_URL,
            params={"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
        )
        if data is None:
            return None
        author = data.get("author_name")
        return VideoMetadata(
            title=data.get("title") or None,
            description=data.get("description") or (f"Video by {author}" if author else None),
        )
