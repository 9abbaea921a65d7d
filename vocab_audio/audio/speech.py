"""On-device speech synthesis backed by pyttsx3.

pyttsx3 drives the platform engine (SAPI5, NSSpeechSynthesizer or eSpeak)
through a blocking ``runAndWait`` loop that reports progress through
callbacks. ``SpeechSynthesizer.speak`` runs that loop on a worker thread and
bridges the callbacks into an awaitable that finishes when the utterance
ends, raises when the engine reports an error, and returns ``False`` when the
utterance was cancelled.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from vocab_audio.audio.types import AudioReference
from vocab_audio.errors import AudioResolutionError, SynthesisUnsupported

logger = logging.getLogger(__name__)

EngineFactory = Callable[[], Any]


def _pyttsx3_engine() -> Any:
    import pyttsx3

    return pyttsx3.init()


def _voice_matches(voice: Any, locale: str) -> bool:
    wanted = {locale.lower(), locale.lower().replace("-", "_"), locale.split("-")[0].lower()}
    languages = []
    for language in getattr(voice, "languages", None) or []:
        if isinstance(language, bytes):
            language = language.decode("utf-8", errors="ignore")
        languages.append(str(language).strip("\x05").lower())
    return any(language in wanted for language in languages) or any(
        tag in str(getattr(voice, "id", "")).lower() for tag in wanted if len(tag) > 2
    )


class SpeechSynthesizer:
    def __init__(
        self,
        *,
        locale: str = "en-US",
        rate: float = 0.8,
        engine_factory: Optional[EngineFactory] = None,
    ):
        self.locale = locale
        self.rate = rate
        self._engine_factory = engine_factory or _pyttsx3_engine
        self._engine: Any = None
        self._unsupported: Optional[str] = None
        self._base_rate: Optional[float] = None
        self._lock = asyncio.Lock()
        self._speaking = False

    @property
    def available(self) -> bool:
        try:
            self._ensure_engine()
        except SynthesisUnsupported:
            return False
        return True

    def reference(self, text: str, locale: str | None = None) -> AudioReference:
        """Return a synthesis reference for ``text`` or raise if unsupported."""

        self._ensure_engine()
        return AudioReference.synthesis(text, locale or self.locale)

    async def speak(self, text: str, locale: str | None = None) -> bool:
        """Speak ``text``; True when it finished, False when it was cancelled."""

        engine = self._ensure_engine()
        # Only one utterance plays at a time, like the browser speech queue.
        self.cancel()
        async with self._lock:
            return await self._run_utterance(engine, text, locale or self.locale)

    def cancel(self) -> None:
        if self._engine is not None and self._speaking:
            logger.debug("cancelling current utterance")
            self._engine.stop()

    # Internal helpers ---------------------------------------------------
    def _ensure_engine(self) -> Any:
        if self._engine is not None:
            return self._engine
        if self._unsupported is not None:
            raise SynthesisUnsupported(self._unsupported)

        try:
            engine = self._engine_factory()
            if engine is None:
                raise SynthesisUnsupported("no speech engine on this platform")
            base_rate = float(engine.getProperty("rate") or 200)
        except SynthesisUnsupported as exc:
            self._unsupported = str(exc)
        except ImportError as exc:
            self._unsupported = f"pyttsx3 not installed: {exc}"
        except Exception as exc:
            self._unsupported = f"speech engine unavailable: {exc}"
        else:
            self._engine = engine
            self._base_rate = base_rate
            logger.info("speech synthesis initialised")
            return engine

        logger.warning("speech synthesis unsupported: %s", self._unsupported)
        raise SynthesisUnsupported(self._unsupported)

    def _configure(self, engine: Any, locale: str) -> None:
        engine.setProperty("rate", int((self._base_rate or 200) * self.rate))
        engine.setProperty("volume", 1.0)
        for voice in engine.getProperty("voices") or []:
            if _voice_matches(voice, locale):
                engine.setProperty("voice", voice.id)
                return
        logger.debug("no voice for %s, keeping the engine default", locale)

    async def _run_utterance(self, engine: Any, text: str, locale: str) -> bool:
        loop = asyncio.get_running_loop()
        finished: asyncio.Future = loop.create_future()

        def _settle(result: bool | None = None, error: BaseException | None = None) -> None:
            if finished.done():
                return
            if error is not None:
                finished.set_exception(AudioResolutionError(f"speech synthesis failed: {error}"))
            else:
                finished.set_result(result)

        def on_start(name: Any) -> None:
            logger.debug("utterance started for %r", text)

        def on_end(name: Any, completed: bool) -> None:
            loop.call_soon_threadsafe(_settle, bool(completed))

        def on_error(name: Any, exception: BaseException) -> None:
            loop.call_soon_threadsafe(_settle, None, exception)

        tokens = [
            engine.connect("started-utterance", on_start),
            engine.connect("finished-utterance", on_end),
            engine.connect("error", on_error),
        ]
        self._configure(engine, locale)
        engine.say(text)
        self._speaking = True
        try:
            await loop.run_in_executor(None, engine.runAndWait)
        except asyncio.CancelledError:
            engine.stop()
            raise
        except Exception as exc:
            raise AudioResolutionError(f"speech synthesis failed: {exc}") from exc
        finally:
            self._speaking = False
            for token in tokens:
                engine.disconnect(token)

        # runAndWait returned without an end callback (some drivers skip it).
        _settle(True)
        return await finished
