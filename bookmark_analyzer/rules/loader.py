from __future__ import annotations

import copy
import logging
from pathlib import Path

import yaml


logger = logging.getLogger(__name__)


# Order matters: categories are reported in table order and the first match
# becomes the main topic.
DEFAULT_RULES: dict = {
    "categories": {
        "development": ["programming", "code", "developer", "software", "web", "app"],
        "technology": ["tech", "technology", "digital"],
        "ai": ["ai", "machine learning", "neural", "deep learning", "artificial intelligence"],
        "business": ["business", "company", "startup", "entrepreneur"],
        "finance": ["finance", "money", "investing", "stock", "market"],
        "science": ["science", "research", "study", "scientific"],
        "health": ["health", "medical", "fitness", "wellness"],
        "news": ["news", "current events", "latest"],
        "memes": ["meme", "funny", "humor", "jokes"],
        "entertainment": ["entertainment", "movie", "tv", "music", "game"],
        "education": ["education", "learn", "course", "tutorial"],
        "social": ["social", "community", "people", "network"],
    },
    "sentiment": {
        "positive": ["great", "awesome", "excellent", "good", "best", "positive", "amazing"],
        "negative": ["bad", "terrible", "worst", "negative", "problem", "issue", "fail"],
    },
    "min_title_word_len": 4,
}


def load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"rules yaml must be a mapping: {path}")
    return data


def _union(first: list, second: list) -> list:
    """Ordered union; keywords are matched case-insensitively so dedupe that way."""
    seen: set[str] = set()
    merged = []
    for item in [*first, *second]:
        key = str(item).casefold()
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged


def deep_merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if v is None:
            continue
        current = out.get(k)
        if isinstance(current, dict) and isinstance(v, dict):
            out[k] = deep_merge(current, v)
        elif isinstance(current, list) and isinstance(v, list):
            out[k] = _union(current, v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def load_rules(overrides_path: Path | None = None) -> dict:
    if overrides_path is None:
        return copy.deepcopy(DEFAULT_RULES)
    overrides = load_yaml(overrides_path)
    if overrides:
        logger.info("loaded rule overrides from %s", overrides_path)
    return deep_merge(DEFAULT_RULES, overrides)
