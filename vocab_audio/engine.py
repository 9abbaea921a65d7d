"""Assemble the audio resolution engine from settings.

Each game (or test) builds its own engine; nothing here is a process-wide
singleton. The cache is the only piece meant to be shared, and sharing it is
just a matter of pointing two engines at the same directory.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from vocab_audio.audio.chain import SourceChain
from vocab_audio.audio.preloader import PreloadOrchestrator, PreloadResult, ProgressCallback
from vocab_audio.audio.probe import ConnectivityProbe
from vocab_audio.audio.speech import EngineFactory, SpeechSynthesizer
from vocab_audio.audio.types import AudioReference, VocabularyWord
from vocab_audio.client import AudioHttpClient
from vocab_audio.config import AudioSettings, PreloadSettings
from vocab_audio.ops.metrics import MetricsRegistry
from vocab_audio.storage.cache import CacheStore


@dataclass
class AudioEngine:
    cache: CacheStore
    client: AudioHttpClient
    synthesizer: SpeechSynthesizer
    chain: SourceChain
    probe: ConnectivityProbe
    orchestrator: PreloadOrchestrator
    metrics: MetricsRegistry = field(default_factory=MetricsRegistry)

    @classmethod
    def create(
        cls,
        settings: AudioSettings | None = None,
        preload_settings: PreloadSettings | None = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        engine_factory: Optional[EngineFactory] = None,
        cache: Optional[CacheStore] = None,
        **orchestrator_options: Any,
    ) -> "AudioEngine":
        settings = settings or AudioSettings()
        metrics = MetricsRegistry()
        cache = cache or CacheStore(settings.cache_dir, max_age=settings.cache_max_age_seconds)
        client = AudioHttpClient(settings, http_client=http_client)
        synthesizer = SpeechSynthesizer(
            locale=settings.primary_locale,
            rate=settings.speech_rate,
            engine_factory=engine_factory,
        )
        chain = SourceChain(cache, client, synthesizer, metrics=metrics)
        probe = ConnectivityProbe(client)
        orchestrator = PreloadOrchestrator(cache, probe, chain, preload_settings, **orchestrator_options)
        return cls(
            cache=cache,
            client=client,
            synthesizer=synthesizer,
            chain=chain,
            probe=probe,
            orchestrator=orchestrator,
            metrics=metrics,
        )

    async def preload(
        self,
        words: Sequence[VocabularyWord],
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> PreloadResult:
        return await self.orchestrator.preload(words, on_progress, cancel_event=cancel_event)

    async def resolve(self, word: VocabularyWord | str) -> Optional[AudioReference]:
        return await self.chain.resolve(word)

    async def aclose(self) -> None:
        self.synthesizer.cancel()
        await self.client.aclose()
