"""Async HTTP client for the engine's network audio sources.

Wraps an ``httpx.AsyncClient`` with the calls the source chain and the
connectivity probe need: fetching audio through the relay, fetching it from
the third-party endpoint directly, and the cheap reachability checks for
both. Every call is bounded by its own timeout and reports failures with the
engine's exception taxonomy so the callers can log and move on.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from vocab_audio.config import AudioSettings
from vocab_audio.errors import EmptyPayload, ProbeFailure, ProbeTimeout, SourceFetchFailure
from vocab_audio.tts.tts_service import direct_urls, translate_tts_url

logger = logging.getLogger(__name__)

PROBE_TEXT = "test"


@dataclass
class FetchedAudio:
    payload: bytes
    content_type: str
    url: str


class AudioHttpClient:
    """Network collaborator for the source chain and the probe.

    Usage:
        client = AudioHttpClient(AudioSettings())
        audio = await client.fetch_relay("apple")
        await client.aclose()
    """

    def __init__(self, settings: AudioSettings, http_client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._owns_client = http_client is None
        self.http = http_client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    # Audio sources ------------------------------------------------------
    def relay_url(self, text: str) -> str:
        params = httpx.QueryParams({"text": text, "lang": self.settings.primary_language})
        return f"{self.settings.relay_url}?{params}"

    async def fetch_relay(self, text: str) -> FetchedAudio:
        return await self._fetch_audio("proxy", text, self.relay_url(text))

    async def fetch_direct(self, text: str, cancelled: Optional[Callable[[], bool]] = None) -> FetchedAudio:
        """Try each direct endpoint variant; raise the last failure if none works.

        ``cancelled`` is checked before every variant; once it returns True no
        further request is started.
        """

        urls = direct_urls(self.settings.direct_url, text, self.settings.primary_language, self.settings.direct_clients)
        last_error = SourceFetchFailure("direct", text, "no direct endpoint variants configured")
        for url in urls:
            if cancelled is not None and cancelled():
                raise SourceFetchFailure("direct", text, "cancelled")
            try:
                return await self._fetch_audio("direct", text, url)
            except SourceFetchFailure as exc:
                logger.debug("direct variant failed: %s", exc)
                last_error = exc
        raise last_error

    # Probes -------------------------------------------------------------
    async def probe_relay(self) -> None:
        response = await self._probe("relay", self.http.get(self.relay_url(PROBE_TEXT)), self.settings.probe_timeout)
        if not response.is_success:
            raise ProbeFailure(f"relay answered {response.status_code}")

    async def probe_direct(self) -> None:
        """Any HTTP answer from the direct endpoint counts as reachable."""

        url = translate_tts_url(self.settings.direct_url, PROBE_TEXT, self.settings.primary_language, client="tw-ob")
        await self._probe("direct", self.http.head(url), self.settings.direct_probe_timeout)

    # Internal helpers ---------------------------------------------------
    async def _fetch_audio(self, source: str, text: str, url: str) -> FetchedAudio:
        try:
            response = await asyncio.wait_for(self.http.get(url), timeout=self.settings.fetch_timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise SourceFetchFailure(source, text, f"timed out after {self.settings.fetch_timeout}s") from exc
        except httpx.HTTPError as exc:
            raise SourceFetchFailure(source, text, str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise SourceFetchFailure(source, text, f"status {response.status_code}")
        if not response.content:
            raise EmptyPayload(source, text)

        return FetchedAudio(
            payload=response.content,
            content_type=response.headers.get("content-type") or "audio/mpeg",
            url=url,
        )

    async def _probe(self, name: str, request: Awaitable[httpx.Response], timeout: float) -> httpx.Response:
        try:
            return await asyncio.wait_for(request, timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ProbeTimeout(f"{name} probe timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ProbeFailure(f"{name} probe failed: {str(exc) or exc.__class__.__name__}") from exc
