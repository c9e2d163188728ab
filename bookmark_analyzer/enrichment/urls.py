from __future__ import annotations

import re
from urllib.parse import urlparse

from bookmark_analyzer.models import ContentKind


_VIDEO_HOSTS = ("youtube.com", "youtu.be", "youtube-nocookie.com")
_SOCIAL_HOSTS = ("twitter.com", "x.com")
_REPO_HOSTS = ("github.com",)

_VIDEO_ID_RE = re.compile(r"(?:youtu\.be/|/v/|/u/\w/|/embed/|/shorts/|/live/|[?&]v=)([^#&?/]*)")
_REPO_RE = re.compile(r"^/([^/?#]+)/([^/?#]+)")
_SOCIAL_RE = re.compile(r"^/([^/?#]+)")

_NON_OWNER_PATHS = {"orgs", "topics", "settings", "marketplace", "explore", "sponsors", "features", "login"}
_NON_USER_PATHS = {"hashtag", "search", "i", "home", "explore", "intent", "share", "settings"}


def _parsed(url: str):
    url = (url or "").strip()
    if "://" not in url:
        url = "https://" + url
    return urlparse(url)


def host_of(url: str) -> str:
    host = (_parsed(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _on(host: str, domains: tuple[str, ...]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


def detect_content_kind(url: str) -> ContentKind:
    host = host_of(url)
    if _on(host, _VIDEO_HOSTS):
        return ContentKind.VIDEO
    if _on(host, _SOCIAL_HOSTS):
        return ContentKind.SOCIAL_POST
    if _on(host, _REPO_HOSTS):
        return ContentKind.CODE_REPOSITORY
    return ContentKind.GENERAL


def extract_video_id(url: str) -> str | None:
    m = _VIDEO_ID_RE.search(url or "")
    if not m:
        return None
    video_id = m.group(1)
    return video_id if len(video_id) == 11 else None


def extract_repo(url: str) -> tuple[str, str] | None:
    m = _REPO_RE.match(_parsed(url).path or "")
    if not m:
        return None
    owner, name = m.group(1), m.group(2)
    if owner.lower() in _NON_OWNER_PATHS:
        return None
    if name.endswith(".git"):
        name = name[:-4]
    return (owner, name) if name else None


def extract_social_handle(url: str) -> str | None:
    m = _SOCIAL_RE.match(_parsed(url).path or "")
    if not m:
        return None
    handle = m.group(1)
    if handle.lower() in _NON_USER_PATHS:
        return None
    return handle
