"""Value types shared by the cache, the source chain and the preloader."""
from __future__ import annotations

import enum
import unicodedata
from dataclasses import dataclass, replace
from typing import Optional


class AudioSourceKind(str, enum.Enum):
    CACHED = "cached"
    PRELOADED = "preloaded"
    PROXY_RELAY = "proxy"
    DIRECT_THIRD_PARTY = "direct"
    ON_DEVICE_SYNTHESIS = "speech"


@dataclass(frozen=True)
class AudioReference:
    """Playable pronunciation for one word.

    Network kinds carry the fetched payload (and the URL it came from),
    on-device synthesis carries only the text and locale because the audio is
    generated when played.
    """

    kind: AudioSourceKind
    payload: Optional[bytes] = None
    content_type: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None
    locale: Optional[str] = None

    @classmethod
    def cached(cls, payload: bytes, content_type: str | None = None) -> "AudioReference":
        return cls(kind=AudioSourceKind.CACHED, payload=payload, content_type=content_type)

    @classmethod
    def fetched(cls, kind: AudioSourceKind, payload: bytes, content_type: str | None, url: str) -> "AudioReference":
        return cls(kind=kind, payload=payload, content_type=content_type or "audio/mpeg", url=url)

    @classmethod
    def synthesis(cls, text: str, locale: str) -> "AudioReference":
        return cls(kind=AudioSourceKind.ON_DEVICE_SYNTHESIS, text=text, locale=locale)

    @property
    def is_synthesis(self) -> bool:
        return self.kind is AudioSourceKind.ON_DEVICE_SYNTHESIS

    def as_preloaded(self) -> "AudioReference":
        return replace(self, kind=AudioSourceKind.PRELOADED)


@dataclass
class VocabularyWord:
    id: str
    english: str
    translation: str = ""
    audio: Optional[AudioReference] = None


def normalize_word(word: str) -> str:
    """Return the cache key for ``word``."""

    collapsed = " ".join(unicodedata.normalize("NFC", word).split())
    return collapsed.casefold()
