"""Records persisted by the audio cache."""
from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Dict

CACHE_SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class CacheEntry:
    word: str
    payload: bytes
    stored_at: float
    content_type: str = "audio/mpeg"
    success: bool = True

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CacheEntry":
        return cls(
            word=row["word"],
            payload=bytes(row["payload"]),
            stored_at=row["stored_at"],
            content_type=row["content_type"] or "audio/mpeg",
            success=bool(row["success"]),
        )

    def is_fresh(self, now: float, max_age: float) -> bool:
        return now - self.stored_at < max_age


@dataclass
class CacheMetadata:
    """Summary of the last preload run; not consulted for lookups."""

    version: str
    last_updated: float
    total_words: int
    successful_words: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CacheMetadata":
        return cls(
            version=str(payload.get("version", CACHE_SCHEMA_VERSION)),
            last_updated=float(payload["last_updated"]),
            total_words=int(payload.get("total_words", 0)),
            successful_words=int(payload.get("successful_words", 0)),
        )


@dataclass(frozen=True)
class StorageUsage:
    used: int = 0
    quota: int = 0
