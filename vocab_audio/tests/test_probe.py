import asyncio

import httpx

from vocab_audio.audio.probe import ConnectivityProbe
from vocab_audio.client import AudioHttpClient


def _probe(settings, network, log=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(network.handler))
    return ConnectivityProbe(AudioHttpClient(settings, http_client=http_client), log=log)


def test_relay_success_skips_direct_check(settings, network):
    network.relay["test"] = (200, b"mp3")

    reachable = asyncio.run(_probe(settings, network).check())

    assert reachable is True
    assert [host for _, host, _ in network.probe_calls()] == ["relay.test"]


def test_direct_answer_counts_when_relay_fails(settings, network):
    network.relay["test"] = (503, b"")
    # Any HTTP answer from the direct endpoint means the network path exists.
    network.direct["test"] = (405, b"")

    reachable = asyncio.run(_probe(settings, network).check())

    assert reachable is True
    assert network.probe_calls() == [("GET", "relay.test", "test"), ("HEAD", "direct.test", "test")]


def test_unreachable_when_both_checks_fail(settings, network):
    messages = []

    reachable = asyncio.run(_probe(settings, network, log=messages.append).check())

    assert reachable is False
    assert messages[-1] == "All TTS services unreachable"


def test_relay_timeout_is_treated_as_failure(settings, network):
    network.relay["test"] = httpx.ReadTimeout("slow relay")
    network.direct["test"] = httpx.ConnectTimeout("slow direct")
    messages = []

    reachable = asyncio.run(_probe(settings, network, log=messages.append).check())

    assert reachable is False
    assert any("timed out" in message for message in messages)


def test_unexpected_errors_never_escape(settings):
    class BrokenClient:
        async def probe_relay(self):
            raise ValueError("boom")

        async def probe_direct(self):
            raise KeyError("boom")

    reachable = asyncio.run(ConnectivityProbe(BrokenClient(), log=lambda message: None).check())

    assert reachable is False


def test_log_can_be_redirected_per_check(settings, network):
    default_sink = []
    run_log = []
    probe = _probe(settings, network, log=default_sink.append)

    asyncio.run(probe.check(log=run_log.append))

    assert default_sink == []
    assert "All TTS services unreachable" in run_log


def test_cancelled_check_skips_the_direct_request(settings, network):
    messages = []

    reachable = asyncio.run(_probe(settings, network).check(log=messages.append, cancelled=lambda: True))

    assert reachable is False
    assert network.probe_calls() == [("GET", "relay.test", "test")]
    assert messages[-1] == "Skipping direct TTS check: preload cancelled"
