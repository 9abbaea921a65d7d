"""Failure taxonomy for the audio resolution engine.

These are raised by the engine's collaborators and caught at the component
boundary; callers of the cache, probe, chain and preloader never see them.
"""
from __future__ import annotations


class AudioResolutionError(RuntimeError):
    """Base class for every failure the engine captures."""


class CacheUnavailable(AudioResolutionError):
    """The persistent audio store cannot be opened or written."""


class ProbeFailure(AudioResolutionError):
    """A connectivity check did not get a usable answer."""


class ProbeTimeout(ProbeFailure):
    """A connectivity check ran past its deadline."""


class SourceFetchFailure(AudioResolutionError):
    """A network audio source did not produce audio."""

    def __init__(self, source: str, word: str, reason: str):
        super().__init__(f"{source} failed for {word!r}: {reason}")
        self.source = source
        self.word = word
        self.reason = reason


class EmptyPayload(SourceFetchFailure):
    """A source answered successfully but with a zero-length body."""

    def __init__(self, source: str, word: str):
        super().__init__(source, word, "empty payload")


class SynthesisUnsupported(AudioResolutionError):
    """The platform has no speech synthesis capability."""
