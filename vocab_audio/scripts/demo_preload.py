"""Preload pronunciation audio for a word list from the command line.

Example:
    python -m vocab_audio.scripts.demo_preload words.txt --relay-url http://localhost:8000/tts-proxy
"""
from __future__ import annotations

import argparse
import asyncio
import csv
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from vocab_audio.audio.preloader import PreloadResult, ProgressEvent
from vocab_audio.audio.types import VocabularyWord
from vocab_audio.config import AudioSettings, PreloadSettings, configure_logging
from vocab_audio.engine import AudioEngine


def read_words(path: Path) -> List[VocabularyWord]:
    """Read ``english[,translation]`` rows, skipping blanks and ``#`` comments."""

    words: List[VocabularyWord] = []
    with path.open(newline="", encoding="utf-8") as handle:
        for row in csv.reader(handle):
            if not row or not row[0].strip() or row[0].lstrip().startswith("#"):
                continue
            english = row[0].strip()
            translation = row[1].strip() if len(row) > 1 else ""
            words.append(VocabularyWord(id=str(len(words) + 1), english=english, translation=translation))
    return words


def _print_progress(event: ProgressEvent) -> None:
    print(
        f"[{event.phase.value:>18}] {event.current}/{event.total} "
        f"{event.percentage:5.1f}% ok={event.success_count} err={event.error_count} {event.current_word}"
    )


async def run_demo_preload(
    words: Sequence[VocabularyWord],
    *,
    settings: AudioSettings,
    clear_cache: bool = False,
    sweep: bool = False,
    speak: bool = False,
) -> PreloadResult:
    engine = AudioEngine.create(settings, PreloadSettings.from_env())
    try:
        if clear_cache:
            await engine.cache.clear()
        if sweep:
            removed = await engine.cache.sweep_expired()
            print(f"Swept {removed} expired entries")

        result = await engine.preload(words, _print_progress)

        usage = await engine.cache.usage()
        print(f"Cache usage: {usage.used} / {usage.quota} bytes")

        if speak and words:
            reference = await engine.resolve(words[0])
            if reference is not None and reference.is_synthesis:
                await engine.synthesizer.speak(reference.text or words[0].english, reference.locale)
            if words[0].translation and engine.synthesizer.available:
                await engine.synthesizer.speak(words[0].translation, settings.translation_locale)
        return result
    finally:
        await engine.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Preload pronunciation audio for a word list")
    parser.add_argument("words", type=Path, help="Text/CSV file with one english[,translation] pair per line")
    parser.add_argument("--relay-url", default=None, help="TTS relay endpoint (defaults to settings)")
    parser.add_argument("--cache-dir", default=None, help="Directory for the audio cache")
    parser.add_argument("--clear-cache", action="store_true", help="Drop cached audio before preloading")
    parser.add_argument("--sweep", action="store_true", help="Remove expired cache entries before preloading")
    parser.add_argument("--speak", action="store_true", help="Speak the first word when it resolves to on-device voice")
    parser.add_argument("--log-level", default="warning")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    settings = AudioSettings.from_env()
    if args.relay_url:
        settings = replace(settings, relay_url=args.relay_url)
    if args.cache_dir:
        settings = replace(settings, cache_dir=args.cache_dir)

    words = read_words(args.words)
    result = asyncio.run(
        run_demo_preload(
            words,
            settings=settings,
            clear_cache=args.clear_cache,
            sweep=args.sweep,
            speak=args.speak,
        )
    )

    print(f"Method: {result.method.value}")
    print(f"Ready: {result.successful_words}/{result.total_words} in {result.duration:.2f}s")
    if result.failed_words:
        print("Failed: " + ", ".join(result.failed_words))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
