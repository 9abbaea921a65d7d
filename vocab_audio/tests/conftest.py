from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, List, Tuple, Union

import httpx
import pytest

from vocab_audio.config import AudioSettings, PreloadSettings
from vocab_audio.engine import AudioEngine

RELAY_URL = "http://relay.test/tts-proxy"
DIRECT_URL = "http://direct.test/translate_tts"
PROBE_TEXT = "test"

Outcome = Union[Tuple[int, bytes], Exception]


class FakeNetwork:
    """Route engine requests by host and word, and record every call.

    ``relay`` and ``direct`` map the requested text to a ``(status, body)``
    pair or an exception to raise. Unknown words get the defaults: the relay
    answers 503 and the direct endpoint refuses the connection.
    """

    def __init__(self) -> None:
        self.relay: Dict[str, Outcome] = {}
        self.direct: Dict[str, Outcome] = {}
        self.relay_default: Outcome = (503, b"")
        self.direct_default: Outcome | None = None
        self.calls: List[Tuple[str, str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        text = request.url.params.get("text") or request.url.params.get("q") or ""
        self.calls.append((request.method, host, text))

        if host == "relay.test":
            outcome = self.relay.get(text, self.relay_default)
        else:
            outcome = self.direct.get(text, self.direct_default)
            if outcome is None:
                raise httpx.ConnectError("blocked by cross-origin policy", request=request)

        if isinstance(outcome, Exception):
            raise outcome
        status, body = outcome
        return httpx.Response(status, content=body, headers={"content-type": "audio/mpeg"})

    def word_calls(self, text: str | None = None) -> List[Tuple[str, str, str]]:
        """Calls made for words, excluding connectivity probes."""

        return [call for call in self.calls if call[2] != PROBE_TEXT and (text is None or call[2] == text)]

    def probe_calls(self) -> List[Tuple[str, str, str]]:
        return [call for call in self.calls if call[2] == PROBE_TEXT]


class FakeSpeechEngine:
    """Stand-in for a pyttsx3 engine that 'speaks' synchronously."""

    def __init__(self, fail_with: Exception | None = None, completed: bool = True) -> None:
        self.properties = {
            "rate": 200,
            "volume": 0.5,
            "voice": None,
            "voices": [
                SimpleNamespace(id="english-us", languages=[b"\x05en-us"]),
                SimpleNamespace(id="mandarin", languages=["zh-cn"]),
            ],
        }
        self.fail_with = fail_with
        self.completed = completed
        self.callbacks: Dict[str, list] = {}
        self.queue: List[str] = []
        self.spoken: List[str] = []
        self.stopped = False

    def getProperty(self, name):
        return self.properties[name]

    def setProperty(self, name, value):
        self.properties[name] = value

    def connect(self, topic, callback):
        self.callbacks.setdefault(topic, []).append(callback)
        return (topic, callback)

    def disconnect(self, token):
        topic, callback = token
        self.callbacks[topic].remove(callback)

    def say(self, text):
        self.queue.append(text)

    def runAndWait(self):
        for text in self.queue:
            for callback in self.callbacks.get("started-utterance", []):
                callback(text)
            if self.fail_with is not None:
                for callback in self.callbacks.get("error", []):
                    callback(text, self.fail_with)
                continue
            self.spoken.append(text)
            for callback in self.callbacks.get("finished-utterance", []):
                callback(text, self.completed and not self.stopped)
        self.queue.clear()

    def stop(self):
        self.stopped = True


def no_speech_engine():
    raise RuntimeError("no speech driver")


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def settings(tmp_path) -> AudioSettings:
    return AudioSettings(relay_url=RELAY_URL, direct_url=DIRECT_URL, cache_dir=str(tmp_path / "cache"))


@pytest.fixture
def preload_settings() -> PreloadSettings:
    return PreloadSettings(pacing_delay=0, fallback_pacing_delay=0)


@pytest.fixture
def make_engine(settings, network, preload_settings):
    def _make(*, speech: bool = True, **options) -> AudioEngine:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(network.handler))
        return AudioEngine.create(
            settings,
            preload_settings,
            http_client=http_client,
            engine_factory=FakeSpeechEngine if speech else no_speech_engine,
            **options,
        )

    return _make


@pytest.fixture
def speech_engine():
    """Factory for fake speech engines, for tests that drive the synthesizer directly."""

    return FakeSpeechEngine
