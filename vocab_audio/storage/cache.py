"""SQLite-backed cache of resolved pronunciation audio.

Entries are keyed by the normalized word and stamped with the time they were
stored. Lookups ignore entries older than the configured age without deleting
them; ``sweep_expired`` removes them in bulk through the timestamp index.

The store never raises to its callers: when the database cannot be opened or
written every operation logs a warning and reports a failed/empty result so
the engine carries on as if nothing were cached.
"""
from __future__ import annotations

import asyncio
import json
import logging
import shutil
import sqlite3
import time
from contextlib import closing
from pathlib import Path
from typing import Callable, Optional, TypeVar

from vocab_audio.audio.types import normalize_word
from vocab_audio.errors import CacheUnavailable
from vocab_audio.storage.records import CacheEntry, CacheMetadata, StorageUsage

logger = logging.getLogger(__name__)

DB_FILENAME = "audio_cache.db"
METADATA_FILENAME = "metadata.json"
DEFAULT_MAX_AGE = 7 * 24 * 60 * 60

T = TypeVar("T")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS audio_blobs (
        word TEXT PRIMARY KEY,
        payload BLOB NOT NULL,
        content_type TEXT,
        stored_at REAL NOT NULL,
        success INTEGER NOT NULL DEFAULT 1
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_audio_blobs_stored_at ON audio_blobs (stored_at)",
)


class CacheStore:
    def __init__(
        self,
        cache_dir: str | Path,
        *,
        max_age: float = DEFAULT_MAX_AGE,
        now: Callable[[], float] | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.max_age = max_age
        self._now = now or time.time
        self._db_path = self.cache_dir / DB_FILENAME
        self._metadata_path = self.cache_dir / METADATA_FILENAME

    # Public API ---------------------------------------------------------
    async def put(self, word: str, payload: bytes, content_type: str | None = None) -> bool:
        """Store ``payload`` for ``word``, replacing any previous entry."""

        if not payload:
            logger.warning("refusing to cache empty payload for %r", word)
            return False
        return await self._guarded(
            "put", lambda: self._put(normalize_word(word), payload, content_type or "audio/mpeg"), False
        )

    async def get(self, word: str) -> Optional[CacheEntry]:
        """Return the entry for ``word`` when present and not expired."""

        entry = await self._guarded("get", lambda: self._get(normalize_word(word)), None)
        if entry is None:
            return None
        if not entry.is_fresh(self._now(), self.max_age):
            logger.debug("cache entry for %r expired", entry.word)
            return None
        return entry

    async def sweep_expired(self) -> int:
        """Delete every expired entry and return how many were removed."""

        cutoff = self._now() - self.max_age
        return await self._guarded("sweep", lambda: self._sweep(cutoff), 0)

    async def clear(self) -> None:
        await self._guarded("clear", self._clear, None)

    async def usage(self) -> StorageUsage:
        return await asyncio.to_thread(self._usage)

    async def store_metadata(self, metadata: CacheMetadata) -> bool:
        return await self._guarded("store_metadata", lambda: self._write_metadata(metadata), False)

    async def get_metadata(self) -> Optional[CacheMetadata]:
        return await self._guarded("get_metadata", self._read_metadata, None)

    # Internal helpers ---------------------------------------------------
    async def _guarded(self, operation: str, func: Callable[[], T], fallback: T) -> T:
        try:
            return await asyncio.to_thread(self._call, func)
        except CacheUnavailable as exc:
            logger.warning("audio cache %s failed, continuing without cache: %s", operation, exc)
            return fallback

    @staticmethod
    def _call(func: Callable[[], T]) -> T:
        try:
            return func()
        except (sqlite3.Error, OSError, ValueError) as exc:
            raise CacheUnavailable(str(exc)) from exc

    def _connect(self) -> sqlite3.Connection:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(self._db_path), timeout=5.0)
        connection.row_factory = sqlite3.Row
        for statement in _SCHEMA:
            connection.execute(statement)
        return connection

    def _put(self, key: str, payload: bytes, content_type: str) -> bool:
        with closing(self._connect()) as connection, connection:
            connection.execute(
                """
                INSERT OR REPLACE INTO audio_blobs (word, payload, content_type, stored_at, success)
                VALUES (?, ?, ?, ?, 1)
                """,
                (key, sqlite3.Binary(payload), content_type, self._now()),
            )
        return True

    def _get(self, key: str) -> Optional[CacheEntry]:
        with closing(self._connect()) as connection:
            row = connection.execute(
                "SELECT word, payload, content_type, stored_at, success FROM audio_blobs WHERE word = ?",
                (key,),
            ).fetchone()
        return CacheEntry.from_row(row) if row is not None else None

    def _sweep(self, cutoff: float) -> int:
        with closing(self._connect()) as connection, connection:
            cursor = connection.execute("DELETE FROM audio_blobs WHERE stored_at <= ?", (cutoff,))
            removed = cursor.rowcount
        if removed:
            logger.info("swept %d expired audio entries", removed)
        return removed

    def _clear(self) -> None:
        with closing(self._connect()) as connection, connection:
            connection.execute("DELETE FROM audio_blobs")
        self._metadata_path.unlink(missing_ok=True)

    def _write_metadata(self, metadata: CacheMetadata) -> bool:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._metadata_path.write_text(json.dumps(metadata.as_dict(), indent=2, sort_keys=True))
        return True

    def _read_metadata(self) -> Optional[CacheMetadata]:
        if not self._metadata_path.exists():
            return None
        try:
            return CacheMetadata.from_dict(json.loads(self._metadata_path.read_text()))
        except (KeyError, TypeError, json.JSONDecodeError) as exc:
            logger.warning("ignoring unreadable cache metadata: %s", exc)
            return None

    def _usage(self) -> StorageUsage:
        try:
            if not self.cache_dir.is_dir():
                return StorageUsage()
            used = sum(path.stat().st_size for path in self.cache_dir.iterdir() if path.is_file())
            free = shutil.disk_usage(self.cache_dir).free
        except OSError as exc:
            logger.debug("storage usage unavailable: %s", exc)
            return StorageUsage()
        return StorageUsage(used=used, quota=used + free)
