"""Ordered audio sources tried for a single word.

The order is fixed: a reference the word already carries, the local cache,
the proxy relay, the third-party endpoint directly, and finally on-device
speech synthesis. The first source that yields playable audio wins; network
results are cached before they are returned so the next lookup stops at the
cache. Nothing in here raises to the caller.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Optional

from vocab_audio.audio.speech import SpeechSynthesizer
from vocab_audio.audio.types import AudioReference, AudioSourceKind, VocabularyWord
from vocab_audio.client import AudioHttpClient, FetchedAudio
from vocab_audio.errors import EmptyPayload, SourceFetchFailure, SynthesisUnsupported
from vocab_audio.ops.metrics import MetricsRegistry
from vocab_audio.storage.cache import CacheStore

logger = logging.getLogger(__name__)


class SourceChain:
    def __init__(
        self,
        cache: CacheStore,
        client: AudioHttpClient,
        synthesizer: SpeechSynthesizer,
        *,
        metrics: MetricsRegistry | None = None,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.cache = cache
        self.client = client
        self.synthesizer = synthesizer
        self.metrics = metrics or MetricsRegistry()
        self._log = log or logger.info

    async def resolve(self, word: VocabularyWord | str) -> Optional[AudioReference]:
        """Return playable audio for ``word`` or ``None`` when every source failed."""

        if isinstance(word, str):
            word = VocabularyWord(id=word, english=word)
        text = word.english.strip()
        if not text:
            self._log("Skipping word with empty text")
            return None

        if word.audio is not None:
            if word.audio.is_synthesis:
                return self._synthesis(text, word.audio.locale)
            return self._resolved(word.audio.as_preloaded())

        cached = await self.cache.get(text)
        if cached is not None and cached.success:
            return self._resolved(AudioReference.cached(cached.payload, cached.content_type))

        network = await self.fetch_remote(text)
        if network is not None:
            return network

        return self._synthesis(text)

    async def fetch_remote(
        self,
        text: str,
        log: Optional[Callable[[str], None]] = None,
        cancelled: Optional[Callable[[], bool]] = None,
    ) -> Optional[AudioReference]:
        """Try the relay then the direct endpoint; cache the first success.

        ``log`` overrides where step failures are reported for this call.
        Once ``cancelled`` returns True no further request is started.
        """

        log = log or self._log
        for kind, fetch in (
            (AudioSourceKind.PROXY_RELAY, self.client.fetch_relay),
            (AudioSourceKind.DIRECT_THIRD_PARTY, partial(self.client.fetch_direct, cancelled=cancelled)),
        ):
            if cancelled is not None and cancelled():
                log(f"Skipping {kind.value} for {text}: preload cancelled")
                return None
            try:
                audio: FetchedAudio = await fetch(text)
            except EmptyPayload as exc:
                self.metrics.counter("chain.empty_payload", kind=kind.value).inc()
                log(f"{kind.value} returned empty audio for {text}: {exc.reason}")
                continue
            except SourceFetchFailure as exc:
                self.metrics.counter("chain.failed", kind=kind.value).inc()
                log(f"{kind.value} failed for {text}: {exc.reason}")
                continue
            except Exception as exc:
                self.metrics.counter("chain.failed", kind=kind.value).inc()
                log(f"{kind.value} failed for {text}: {exc}")
                continue

            stored = await self.cache.put(text, audio.payload, audio.content_type)
            if not stored:
                log(f"Could not cache audio for {text}")
            return self._resolved(AudioReference.fetched(kind, audio.payload, audio.content_type, audio.url))

        return None

    def _synthesis(self, text: str, locale: str | None = None) -> Optional[AudioReference]:
        try:
            reference = self.synthesizer.reference(text, locale)
        except SynthesisUnsupported as exc:
            self.metrics.counter("chain.failed", kind=AudioSourceKind.ON_DEVICE_SYNTHESIS.value).inc()
            self._log(f"Speech synthesis unavailable for {text}: {exc}")
            return None
        return self._resolved(reference)

    def _resolved(self, reference: AudioReference) -> AudioReference:
        self.metrics.counter("chain.resolved", kind=reference.kind.value).inc()
        return reference
