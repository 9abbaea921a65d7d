"""Batch preloading of pronunciation audio for a vocabulary list.

A run walks forward through fixed phases::

    checking-cache -> testing-connection -> batch-loading | fallback-mode -> complete

Cached words are annotated first. If anything is left, one connectivity probe
decides between loading the rest over the network and tagging them for
on-device synthesis. Network loading starts with a small canary sample; a
failed canary marks the remaining words failed without trying them, and a run
where most words failed is downgraded to synthesis for the whole vocabulary
so the reported method stays consistent.

Words are processed one at a time. Progress events are immutable snapshots
emitted on every phase change and after every per-word step.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from vocab_audio.audio.chain import SourceChain
from vocab_audio.audio.probe import ConnectivityProbe
from vocab_audio.audio.types import AudioReference, AudioSourceKind, VocabularyWord
from vocab_audio.config import PreloadSettings
from vocab_audio.storage.cache import CacheStore
from vocab_audio.storage.records import CACHE_SCHEMA_VERSION, CacheMetadata

logger = logging.getLogger(__name__)


class PreloadPhase(str, enum.Enum):
    CHECKING_CACHE = "checking-cache"
    TESTING_CONNECTION = "testing-connection"
    BATCH_LOADING = "batch-loading"
    FALLBACK_MODE = "fallback-mode"
    COMPLETE = "complete"


class PreloadMethod(str, enum.Enum):
    ONLINE = "online"
    PROXY = "proxy"
    BROWSER_VOICE = "browser-voice"
    NONE = "none"


_PHASE_ORDER = {
    PreloadPhase.CHECKING_CACHE: 0,
    PreloadPhase.TESTING_CONNECTION: 1,
    PreloadPhase.BATCH_LOADING: 2,
    PreloadPhase.FALLBACK_MODE: 3,
    PreloadPhase.COMPLETE: 4,
}

_ONLINE_KINDS = {AudioSourceKind.CACHED, AudioSourceKind.DIRECT_THIRD_PARTY}


@dataclass(frozen=True)
class ProgressEvent:
    current: int
    total: int
    current_word: str
    percentage: float
    estimated_remaining: float
    success_count: int
    error_count: int
    phase: PreloadPhase
    debug_log: Tuple[str, ...] = ()


@dataclass
class PreloadResult:
    success: bool
    total_words: int
    successful_words: int
    failed_words: List[str]
    duration: float
    debug_log: List[str]
    method: PreloadMethod
    cancelled: bool = False


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class _Run:
    """Mutable state of one preload call; discarded when it returns."""

    words: Sequence[VocabularyWord]
    on_progress: Optional[ProgressCallback]
    cancel_event: Optional[asyncio.Event]
    clock: Callable[[], float]
    started: float
    phase: PreloadPhase = PreloadPhase.CHECKING_CACHE
    current: int = 0
    percentage: float = 0.0
    success_count: int = 0
    error_count: int = 0
    attempts: int = 0
    debug_log: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    kinds: List[AudioSourceKind] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.words)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def log(self, message: str) -> None:
        entry = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        self.debug_log.append(entry)
        logger.info(message)

    def enter(self, phase: PreloadPhase) -> None:
        if _PHASE_ORDER[phase] < _PHASE_ORDER[self.phase]:
            raise RuntimeError(f"cannot move from {self.phase.value} back to {phase.value}")
        self.phase = phase

    def succeeded(self, reference: AudioReference) -> None:
        self.success_count += 1
        self.kinds.append(reference.kind)

    def failed_word(self, word: VocabularyWord) -> None:
        self.error_count += 1
        self.failed.append(word.english)

    def estimate_remaining(self) -> float:
        if not self.attempts:
            return 0.0
        per_word = (self.clock() - self.started) / self.attempts
        return max(0.0, per_word * (self.total - self.current))

    def emit(self, label: str, percentage: float, *, current: int | None = None) -> None:
        if current is not None:
            self.current = min(self.total, max(self.current, current))
        self.percentage = min(100.0, max(self.percentage, percentage))
        event = ProgressEvent(
            current=self.current,
            total=self.total,
            current_word=label,
            percentage=round(self.percentage, 1),
            estimated_remaining=round(self.estimate_remaining(), 2),
            success_count=self.success_count,
            error_count=self.error_count,
            phase=self.phase,
            debug_log=tuple(self.debug_log),
        )
        if self.on_progress is None:
            return
        try:
            self.on_progress(event)
        except Exception as exc:
            logger.warning("progress callback failed: %s", exc)


def _network_method(run: _Run) -> PreloadMethod:
    if not run.kinds:
        return PreloadMethod.NONE
    if set(run.kinds) <= _ONLINE_KINDS:
        return PreloadMethod.ONLINE
    return PreloadMethod.PROXY


class PreloadOrchestrator:
    """Coordinate cache lookups, the connectivity probe and the source chain.

    Usage:
        orchestrator = PreloadOrchestrator(cache, probe, chain)
        result = await orchestrator.preload(words, on_progress=print)
    """

    def __init__(
        self,
        cache: CacheStore,
        probe: ConnectivityProbe,
        chain: SourceChain,
        settings: PreloadSettings | None = None,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.cache = cache
        self.probe = probe
        self.chain = chain
        self.settings = settings or PreloadSettings()
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep

    async def preload(
        self,
        words: Sequence[VocabularyWord],
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> PreloadResult:
        run = _Run(
            words=list(words),
            on_progress=on_progress,
            cancel_event=cancel_event,
            clock=self._clock,
            started=self._clock(),
        )
        run.log(f"Starting preload for {run.total} words")

        pending = await self._check_cache(run)
        if not pending:
            run.log("All audio found in cache")
            return await self._finish(run, PreloadMethod.ONLINE)
        if run.cancelled:
            return await self._finish_cancelled(run, pending)

        run.enter(PreloadPhase.TESTING_CONNECTION)
        run.emit("Testing audio services...", 30)
        reachable = await self.probe.check(log=run.log, cancelled=lambda: run.cancelled)
        if run.cancelled:
            return await self._finish_cancelled(run, pending)
        if not reachable:
            run.log("Network audio unreachable, using on-device voice")
            return await self._fallback(run, pending, downgrade=False)

        run.log("Audio services reachable, loading audio")
        return await self._load_batch(run, pending)

    # Phases -------------------------------------------------------------
    async def _check_cache(self, run: _Run) -> List[VocabularyWord]:
        run.emit("Checking cache...", 10)
        pending: List[VocabularyWord] = []
        for word in run.words:
            entry = await self.cache.get(word.english)
            if entry is not None and entry.success:
                reference = AudioReference.cached(entry.payload, entry.content_type)
                word.audio = reference
                run.succeeded(reference)
                run.log(f"Found cached: {word.english}")
            else:
                pending.append(word)
        run.current = run.success_count
        run.log(f"Cache check complete: {run.success_count}/{run.total} found")
        return pending

    async def _load_batch(self, run: _Run, pending: List[VocabularyWord]) -> PreloadResult:
        run.enter(PreloadPhase.BATCH_LOADING)
        canary = pending[: min(self.settings.canary_size, len(pending))]
        rest = pending[len(canary):]
        run.log(f"Testing with first {len(canary)} words")

        canary_failures = 0
        for index, word in enumerate(canary):
            if run.cancelled:
                return await self._finish_cancelled(run, pending[index:])
            if index:
                await self._sleep(self.settings.pacing_delay)
            if not await self._attempt(run, word):
                canary_failures += 1
        if run.cancelled:
            return await self._finish_cancelled(run, rest)

        if canary_failures >= len(canary) * self.settings.canary_failure_ratio:
            run.log("Test batch mostly failed, skipping remaining words")
            for word in rest:
                run.failed_word(word)
            if rest:
                run.emit(f"Skipped {len(rest)} words", 90, current=run.total)
        else:
            run.log("Test batch successful, continuing with remaining words")
            for index, word in enumerate(rest):
                if run.cancelled:
                    return await self._finish_cancelled(run, rest[index:])
                await self._sleep(self.settings.pacing_delay)
                await self._attempt(run, word)
            if run.cancelled:
                return await self._finish_cancelled(run, [])

        if len(run.failed) > run.total * self.settings.failure_ratio:
            if self.chain.synthesizer.available:
                run.log("Too many failures, switching to on-device voice")
                return await self._fallback(run, list(run.words), downgrade=True)
            run.log("Too many failures, but on-device voice is unavailable; keeping network results")

        return await self._finish(run, _network_method(run))

    async def _attempt(self, run: _Run, word: VocabularyWord) -> bool:
        run.attempts += 1
        reference = await self.chain.fetch_remote(word.english, log=run.log, cancelled=lambda: run.cancelled)
        if reference is not None:
            word.audio = reference
            run.succeeded(reference)
            run.log(f"Audio loaded for: {word.english}")
        else:
            run.failed_word(word)
            run.log(f"Failed to load: {word.english}")
        done = run.success_count + run.error_count
        run.emit(word.english, 30 + 60 * done / max(run.total, 1), current=done)
        return reference is not None

    async def _fallback(self, run: _Run, targets: List[VocabularyWord], *, downgrade: bool) -> PreloadResult:
        """Tag ``targets`` for on-device synthesis; this phase cannot fail."""

        run.enter(PreloadPhase.FALLBACK_MODE)
        run.emit("Setting up on-device voice...", 70)
        synthesizer = self.chain.synthesizer
        supported = synthesizer.available
        if not supported:
            run.log("On-device speech synthesis is not supported")

        if downgrade:
            # The network failure list no longer describes how words will play.
            run.failed = []
            settled = 0
        else:
            settled = run.success_count

        for index, word in enumerate(targets):
            if supported:
                word.audio = AudioReference.synthesis(word.english, synthesizer.locale)
                run.success_count = max(run.success_count, settled + index + 1)
            else:
                run.failed_word(word)
            run.emit(word.english, 70 + 30 * (index + 1) / len(targets), current=settled + index + 1)
            if index % 10 == 0:
                await self._sleep(self.settings.fallback_pacing_delay)

        if supported:
            run.log(f"On-device voice ready for {len(targets)} words")
            return await self._finish(run, PreloadMethod.BROWSER_VOICE)
        return await self._finish(run, PreloadMethod.NONE)

    # Results ------------------------------------------------------------
    async def _finish_cancelled(self, run: _Run, unattempted: Sequence[VocabularyWord]) -> PreloadResult:
        run.log(f"Preload cancelled with {len(unattempted)} words not attempted")
        run.failed.extend(word.english for word in unattempted)
        return await self._finish(run, _network_method(run), cancelled=True)

    async def _finish(self, run: _Run, method: PreloadMethod, *, cancelled: bool = False) -> PreloadResult:
        run.enter(PreloadPhase.COMPLETE)
        successful = run.total - len(run.failed)
        run.log(f"Preload complete via {method.value}: {successful}/{run.total} words ready")
        run.emit("Complete!", 100, current=run.total)

        await self.cache.store_metadata(
            CacheMetadata(
                version=CACHE_SCHEMA_VERSION,
                last_updated=time.time(),
                total_words=run.total,
                successful_words=successful,
            )
        )
        return PreloadResult(
            success=not run.failed and not cancelled,
            total_words=run.total,
            successful_words=successful,
            failed_words=list(run.failed),
            duration=self._clock() - run.started,
            debug_log=list(run.debug_log),
            method=method,
            cancelled=cancelled,
        )
