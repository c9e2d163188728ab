from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("cache file unreadable, starting empty: %s (%s)", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("cache file is not a mapping, starting empty: %s", path)
        return {}
    return data


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    tmp.replace(path)


class JsonFileStore:
    """Whole-document JSON store: ``{key: value}`` in one file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._data: dict[str, Any] | None = None
        self._lock = asyncio.Lock()

    async def _loaded(self) -> dict[str, Any]:
        if self._data is None:
            self._data = await asyncio.to_thread(_read_json, self._path)
        return self._data

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._lock:
            value = (await self._loaded()).get(key)
            return value if isinstance(value, dict) else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        async with self._lock:
            data = await self._loaded()
            data[key] = value
            await asyncio.to_thread(_write_json, self._path, dict(data))

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._loaded()
            if data.pop(key, None) is not None:
                await asyncio.to_thread(_write_json, self._path, dict(data))

    async def clear(self) -> None:
        async with self._lock:
            self._data = {}
            await asyncio.to_thread(self._path.unlink, missing_ok=True)

    async def aclose(self) -> None:
        return None
