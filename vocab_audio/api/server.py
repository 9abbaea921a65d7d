"""FastAPI wiring for the TTS relay.

Browsers cannot read the third-party TTS endpoint directly because of
cross-origin restrictions, so the relay fetches the audio server-side and
hands it back with permissive CORS headers. Nothing is stored: the upstream
is untrusted and may disappear, and clients cache what they receive.
"""
from __future__ import annotations

import collections
import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vocab_audio.config import ServiceSettings
from vocab_audio.ops.metrics import MetricsRegistry
from vocab_audio.tts.tts_service import UpstreamTtsService, UpstreamUnavailable

settings = ServiceSettings.from_env()
logger = logging.getLogger("vocab_audio.api")

app = FastAPI(title="Vocabulary Audio Relay")

AUDIO_CACHE_CONTROL = "public, max-age=86400"


class RateLimiter:
    def __init__(self, max_requests_per_minute: int | None, now: Callable[[], float] | None = None):
        self.max_requests_per_minute = max_requests_per_minute
        self._now = now or time.monotonic
        self._events: collections.deque[float] = collections.deque()

    def allow(self) -> bool:
        if self.max_requests_per_minute is None:
            return True

        current = self._now()
        cutoff = current - 60
        while self._events and self._events[0] < cutoff:
            self._events.popleft()

        if len(self._events) >= self.max_requests_per_minute:
            return False

        self._events.append(current)
        return True


@app.middleware("http")
async def enforce_security(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or str(uuid.uuid4())

    if settings.api_key and request.method != "OPTIONS":
        provided = request.headers.get("x-api-key")
        if provided != settings.api_key:
            logger.warning("rejecting request: missing or invalid API key", extra={"path": request.url.path})
            return JSONResponse({"detail": "invalid api key"}, status_code=status.HTTP_401_UNAUTHORIZED)

    if not rate_limiter.allow():
        logger.warning("rejecting request: rate limit exceeded", extra={"path": request.url.path})
        metrics.counter("relay.rate_limited").inc()
        return JSONResponse({"detail": "rate limit exceeded"}, status_code=status.HTTP_429_TOO_MANY_REQUESTS)

    response = await call_next(request)
    response.headers[settings.request_id_header] = request_id
    return response


@app.middleware("http")
async def apply_cors(request: Request, call_next):
    if request.method == "OPTIONS":
        response = Response(status_code=status.HTTP_200_OK)
    else:
        response = await call_next(request)
    origin = request.headers.get("origin")
    allow_any = "*" in settings.allowed_origins
    if settings.allowed_origins and (allow_any or (origin and origin in settings.allowed_origins)):
        response.headers["access-control-allow-origin"] = origin if origin and not allow_any else "*"
        response.headers["access-control-allow-headers"] = "Content-Type"
        response.headers["access-control-allow-methods"] = "GET,HEAD,OPTIONS"
    return response


upstream = UpstreamTtsService(settings.upstream_url, timeout=settings.upstream_timeout)
metrics = MetricsRegistry()
rate_limiter = RateLimiter(settings.max_requests_per_minute)


class RelayFailure(BaseModel):
    error: str
    attempted: int
    text: str


@app.get("/health")
def healthcheck():
    return {"status": "ok", "languages": settings.languages}


@app.api_route("/tts-proxy", methods=["GET", "HEAD"])
async def tts_proxy(text: str | None = None, lang: str = "en"):
    term = (text or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Text parameter required")
    if lang not in settings.languages:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"lang must be one of: {', '.join(settings.languages)}",
        )

    metrics.counter("relay.calls").inc()
    logger.info("relaying audio request for %r", term)
    try:
        audio = await upstream.synthesize(term, lang=lang)
    except UpstreamUnavailable as exc:
        metrics.counter("relay.upstream_failed").inc()
        failure = RelayFailure(error="All TTS services failed", attempted=exc.attempted, text=term)
        return JSONResponse(failure.model_dump(), status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    metrics.counter("relay.served").inc()
    return Response(
        content=audio.payload,
        media_type=audio.encoding,
        headers={"Cache-Control": AUDIO_CACHE_CONTROL},
    )


@app.get("/metrics")
def metric_snapshot():
    """Expose collected counters for lightweight observability."""

    return {"counters": metrics.snapshot()}
