from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from bookmark_analyzer.storage.schema import SCHEMA_SQL
from bookmark_analyzer.utils import now_utc


logger = logging.getLogger(__name__)


class SqliteStore:
    """Key-value store on a single aiosqlite table.

    Connects lazily on first use so the store can be constructed outside a
    running event loop.
    """

    def __init__(self, sqlite_path: Path):
        self._path = sqlite_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        if self._db is not None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._path.as_posix())
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

    async def aclose(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.connect()
        assert self._db is not None
        return self._db

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self._lock:
            conn = await self._conn()
            cursor = await conn.execute(
                "SELECT value_json FROM analysis_cache WHERE key=?",
                (key,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            try:
                value = json.loads(row["value_json"])
            except json.JSONDecodeError:
                logger.warning("discarding corrupt cache row: %s", key)
                await conn.execute("DELETE FROM analysis_cache WHERE key=?", (key,))
                await conn.commit()
                return None
            return value if isinstance(value, dict) else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        async with self._lock:
            conn = await self._conn()
            await conn.execute(
                "INSERT INTO analysis_cache(key, value_json, updated_at) VALUES(?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value_json=excluded.value_json, updated_at=excluded.updated_at",
                (key, json.dumps(value, ensure_ascii=False), now_utc().isoformat()),
            )
            await conn.commit()

    async def delete(self, key: str) -> None:
        async with self._lock:
            conn = await self._conn()
            await conn.execute("DELETE FROM analysis_cache WHERE key=?", (key,))
            await conn.commit()

    async def clear(self) -> None:
        async with self._lock:
            conn = await self._conn()
            await conn.execute("DELETE FROM analysis_cache")
            await conn.commit()

    async def count(self) -> int:
        async with self._lock:
            conn = await self._conn()
            cursor = await conn.execute("SELECT COUNT(*) AS n FROM analysis_cache")
            row = await cursor.fetchone()
            return int(row["n"])
