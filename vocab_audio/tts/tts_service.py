"""Upstream text-to-speech fetcher used by the relay endpoint.

The upstream is Google Translate's unofficial ``translate_tts`` endpoint. It
has no contract, so several parameter variants are tried in order and the
first one that answers with a non-empty audio body wins.
"""
from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from vocab_audio.errors import AudioResolutionError

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://translate.google.com/translate_tts"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "audio/mpeg, audio/*, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://translate.google.com/",
    "Origin": "https://translate.google.com",
}

# Each variant maps the text to the extra query parameters it needs.
UPSTREAM_VARIANTS: Tuple[Callable[[str], Dict[str, str]], ...] = (
    lambda text: {"client": "tw-ob"},
    lambda text: {"client": "gtx"},
    lambda text: {"total": "1", "idx": "0", "textlen": str(len(text)), "client": "tw-ob", "prev": "input"},
    lambda text: {"tk": "1", "client": "webapp"},
)


def translate_tts_url(base_url: str, text: str, lang: str, **extra: str) -> str:
    params = {"ie": "UTF-8", "q": text, "tl": lang}
    params.update(extra)
    return f"{base_url}?{urllib.parse.urlencode(params)}"


def upstream_urls(base_url: str, text: str, lang: str) -> List[str]:
    """Every upstream URL variant for ``text``, in the order they are tried."""

    return [translate_tts_url(base_url, text, lang, **variant(text)) for variant in UPSTREAM_VARIANTS]


def direct_urls(base_url: str, text: str, lang: str, clients: Sequence[str]) -> List[str]:
    return [translate_tts_url(base_url, text, lang, client=client) for client in clients]


class UpstreamUnavailable(AudioResolutionError):
    """Every upstream variant failed for a piece of text."""

    def __init__(self, text: str, attempted: int):
        super().__init__(f"all {attempted} upstream TTS variants failed for {text!r}")
        self.text = text
        self.attempted = attempted


@dataclass
class SynthesizedAudio:
    text: str
    encoding: str
    payload: bytes
    source_url: str = ""


class UpstreamTtsService:
    """Fetch pronunciation audio from the third-party endpoint.

    ``transport`` lets tests (or an outbound proxy setup) replace the network
    layer without touching the variant logic.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_UPSTREAM_URL,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def synthesize(self, text: str, lang: str = "en") -> SynthesizedAudio:
        """Return audio for ``text`` or raise :class:`UpstreamUnavailable`."""

        normalized = text.strip()
        if not normalized:
            raise ValueError("text is required")

        urls = upstream_urls(self.base_url, normalized, lang)
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers=BROWSER_HEADERS,
            follow_redirects=True,
        ) as client:
            for index, url in enumerate(urls, start=1):
                logger.info("upstream attempt %d/%d for %r", index, len(urls), normalized)
                try:
                    response = await client.get(url)
                except httpx.HTTPError as exc:
                    logger.warning("upstream attempt %d failed: %s", index, exc)
                    continue

                if not response.is_success:
                    logger.warning("upstream attempt %d returned %s", index, response.status_code)
                    continue
                if not response.content:
                    logger.warning("upstream attempt %d returned an empty body", index)
                    continue

                return SynthesizedAudio(
                    text=normalized,
                    encoding=response.headers.get("content-type") or "audio/mpeg",
                    payload=response.content,
                    source_url=url,
                )

        logger.error("all upstream variants failed for %r", normalized)
        raise UpstreamUnavailable(normalized, attempted=len(urls))
