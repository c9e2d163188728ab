from __future__ import annotations

import logging
from dataclasses import dataclass

from bookmark_analyzer.enrichment.urls import (
    detect_content_kind,
    extract_repo,
    extract_social_handle,
    extract_video_id,
)
from bookmark_analyzer.models import Category, ContentItem, ContentKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrichedContent:
    kind: ContentKind
    title: str
    description: str
    context: str
    hint_tags: tuple[str, ...] = ()
    hint_categories: tuple[Category, ...] = ()
    hint_main_topic: str | None = None


class ContentEnricher:
    """Turns a bookmark into prompt context specialised for its platform.

    ``fetcher`` is any object with ``fetch_repo_metadata(owner, name)`` and
    ``fetch_video_metadata(video_id)`` coroutines. Lookups are best effort:
    a failure only narrows the context.
    """

    def __init__(self, fetcher=None, enabled: bool = True):
        self._fetcher = fetcher
        self._enabled = enabled and fetcher is not None

    async def aclose(self) -> None:
        if self._fetcher is not None and hasattr(self._fetcher, "aclose"):
            await self._fetcher.aclose()

    async def enrich(self, item: ContentItem) -> EnrichedContent:
        kind = detect_content_kind(item.url)
        if kind == ContentKind.CODE_REPOSITORY:
            return await self._repository(item)
        if kind == ContentKind.VIDEO:
            return await self._video(item)
        if kind == ContentKind.SOCIAL_POST:
            return self._social(item)
        return self._general(item)

    def _general(self, item: ContentItem) -> EnrichedContent:
        return EnrichedContent(
            kind=ContentKind.GENERAL,
            title=item.title,
            description=item.description,
            context=f"Web page: {item.title}. {item.description}".strip(),
        )

    async def _repository(self, item: ContentItem) -> EnrichedContent:
        repo = extract_repo(item.url)
        if repo is None:
            # profile, org or other non-repository page on the host
            return EnrichedContent(
                kind=ContentKind.CODE_REPOSITORY,
                title=item.title,
                description=item.description,
                context=f"GitHub page: {item.title}. {item.description}".strip(),
                hint_tags=("github",),
            )
        owner, name = repo

        meta = None
        if self._enabled:
            try:
                meta = await self._fetcher.fetch_repo_metadata(owner, name)
            except Exception as e:
                logger.warning("repository metadata lookup failed for %s/%s: %s", owner, name, e)

        title = (meta.name if meta and meta.name else None) or item.title or name
        description = (meta.description if meta and meta.description else None) or item.description
        language = meta.primary_language if meta else None

        context = f"GitHub repository: {title} by {owner}. {description}".strip()
        tags = ["github", "repository", "code"]
        if language:
            context += f" Primary language: {language}."
            tags.append(language.lower())

        return EnrichedContent(
            kind=ContentKind.CODE_REPOSITORY,
            title=title,
            description=description,
            context=context,
            hint_tags=tuple(tags),
            hint_categories=(Category.DEVELOPMENT, Category.TECHNOLOGY),
            hint_main_topic="Software Development",
        )

    async def _video(self, item: ContentItem) -> EnrichedContent:
        video_id = extract_video_id(item.url)

        meta = None
        if video_id and self._enabled:
            try:
                meta = await self._fetcher.fetch_video_metadata(video_id)
            except Exception as e:
                logger.warning("video metadata lookup failed for %s: %s", video_id, e)

        title = (meta.title if meta and meta.title else None) or item.title
        description = (meta.description if meta and meta.description else None) or item.description
        return EnrichedContent(
            kind=ContentKind.VIDEO,
            title=title,
            description=description,
            context=f"Video about: {title}. {description}".strip(),
            hint_tags=("youtube", "video"),
        )

    def _social(self, item: ContentItem) -> EnrichedContent:
        handle = extract_social_handle(item.url)
        tags = ["twitter", "social media"]
        author = ""
        if handle:
            tags.append(f"@{handle}")
            author = f" by @{handle}"
        return EnrichedContent(
            kind=ContentKind.SOCIAL_POST,
            title=item.title,
            description=item.description,
            context=f"Short social media post{author}: {item.title}. {item.description}".strip(),
            hint_tags=tuple(tags),
        )
