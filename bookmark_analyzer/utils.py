from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


_UTM_PREFIXES = ("utm_",)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def canonicalize_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if not k.startswith(_UTM_PREFIXES)]
    cleaned = parsed._replace(fragment="", query=urlencode(query))
    return urlunparse(cleaned)


def collapse_ws(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"


def unique_lower(values) -> list[str]:
    """Lower-case, strip and de-duplicate while keeping first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        tag = str(v).strip().lower()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out
