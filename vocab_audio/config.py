"""Configuration helpers for the relay service and the audio engine.

The settings default to values that work in local development but can be
overridden via environment variables so a deployment can point the engine at
another relay or cache directory without code changes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Tuple

ENV_PREFIX = "VOCAB_AUDIO_"


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    truthy = {"1", "true", "t", "yes", "y"}
    falsy = {"0", "false", "f", "no", "n"}
    if value.lower() in truthy:
        return True
    if value.lower() in falsy:
        return False
    return default


def as_int(value: str | None, default: int | None) -> int | None:
    if value is None:
        return default
    if value.lower() in {"none", "", "-1"}:
        return None
    return int(value)


def as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def as_list(value: str | None, default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ServiceSettings:
    """Settings for the TTS relay service."""

    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"
    api_key: str | None = None
    request_id_header: str = "x-request-id"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    max_requests_per_minute: int | None = None
    upstream_url: str = "https://translate.google.com/translate_tts"
    upstream_timeout: float = 10.0
    languages: List[str] = field(default_factory=lambda: ["en", "zh-CN"])

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        """Load settings from environment variables with safe defaults."""

        defaults = cls()
        return cls(
            host=_env("HOST", defaults.host),
            port=int(_env("PORT", str(defaults.port))),
            reload=as_bool(_env("RELOAD"), defaults.reload),
            log_level=_env("LOG_LEVEL", defaults.log_level),
            api_key=_env("API_KEY") or None,
            request_id_header=_env("REQUEST_ID_HEADER", defaults.request_id_header),
            allowed_origins=as_list(_env("ALLOWED_ORIGINS"), defaults.allowed_origins),
            max_requests_per_minute=as_int(_env("MAX_REQUESTS_PER_MINUTE"), defaults.max_requests_per_minute),
            upstream_url=_env("UPSTREAM_URL", defaults.upstream_url),
            upstream_timeout=as_float(_env("UPSTREAM_TIMEOUT"), defaults.upstream_timeout),
            languages=as_list(_env("LANGUAGES"), defaults.languages),
        )


@dataclass
class AudioSettings:
    """Settings for the client-side audio resolution engine."""

    relay_url: str = "http://localhost:8000/tts-proxy"
    direct_url: str = "https://translate.google.com/translate_tts"
    direct_clients: Tuple[str, ...] = ("tw-ob", "gtx")
    primary_locale: str = "en-US"
    translation_locale: str = "zh-CN"
    cache_dir: str = "data/audio-cache"
    cache_max_age_days: int = 7
    probe_timeout: float = 3.0
    direct_probe_timeout: float = 2.0
    fetch_timeout: float = 3.0
    speech_rate: float = 0.8

    @property
    def cache_max_age_seconds(self) -> float:
        return self.cache_max_age_days * 24 * 60 * 60

    @property
    def primary_language(self) -> str:
        """Language code the upstream expects (``en`` for ``en-US``)."""

        return self.primary_locale.split("-")[0].lower()

    @classmethod
    def from_env(cls) -> "AudioSettings":
        defaults = cls()
        return cls(
            relay_url=_env("RELAY_URL", defaults.relay_url),
            direct_url=_env("DIRECT_URL", defaults.direct_url),
            direct_clients=tuple(as_list(_env("DIRECT_CLIENTS"), list(defaults.direct_clients))),
            primary_locale=_env("PRIMARY_LOCALE", defaults.primary_locale),
            translation_locale=_env("TRANSLATION_LOCALE", defaults.translation_locale),
            cache_dir=_env("CACHE_DIR", defaults.cache_dir),
            cache_max_age_days=as_int(_env("CACHE_MAX_AGE_DAYS"), None) or defaults.cache_max_age_days,
            probe_timeout=as_float(_env("PROBE_TIMEOUT"), defaults.probe_timeout),
            direct_probe_timeout=as_float(_env("DIRECT_PROBE_TIMEOUT"), defaults.direct_probe_timeout),
            fetch_timeout=as_float(_env("FETCH_TIMEOUT"), defaults.fetch_timeout),
            speech_rate=as_float(_env("SPEECH_RATE"), defaults.speech_rate),
        )


@dataclass
class PreloadSettings:
    """Tuning knobs for batch preloading."""

    canary_size: int = 3
    canary_failure_ratio: float = 0.7
    failure_ratio: float = 0.7
    pacing_delay: float = 0.2
    fallback_pacing_delay: float = 0.05

    @classmethod
    def from_env(cls) -> "PreloadSettings":
        defaults = cls()
        return cls(
            canary_size=as_int(_env("CANARY_SIZE"), None) or defaults.canary_size,
            canary_failure_ratio=as_float(_env("CANARY_FAILURE_RATIO"), defaults.canary_failure_ratio),
            failure_ratio=as_float(_env("FAILURE_RATIO"), defaults.failure_ratio),
            pacing_delay=as_float(_env("PACING_DELAY"), defaults.pacing_delay),
            fallback_pacing_delay=as_float(_env("FALLBACK_PACING_DELAY"), defaults.fallback_pacing_delay),
        )


def configure_logging(level: str) -> None:
    """Apply a simple logging configuration for the service."""

    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
