"""Cheap reachability check for the network audio path."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from vocab_audio.client import AudioHttpClient
from vocab_audio.errors import ProbeTimeout

logger = logging.getLogger(__name__)


class ConnectivityProbe:
    """Decide once per batch whether per-word network resolution is worth trying.

    The relay is asked first; if it does not answer successfully the direct
    endpoint gets a no-op ``HEAD``. ``check`` never raises.
    """

    def __init__(self, client: AudioHttpClient, log: Optional[Callable[[str], None]] = None):
        self.client = client
        self._log = log or logger.info

    async def check(
        self,
        log: Optional[Callable[[str], None]] = None,
        cancelled: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Return True when either endpoint answers.

        ``log`` overrides where the steps are reported for this call. Once
        ``cancelled`` returns True the direct check is not started.
        """

        log = log or self._log
        log("Testing proxy relay...")
        try:
            await self.client.probe_relay()
        except ProbeTimeout as exc:
            log(f"Proxy relay timed out: {exc}")
        except Exception as exc:
            log(f"Proxy relay failed: {exc}")
        else:
            log("Proxy relay reachable")
            return True

        if cancelled is not None and cancelled():
            log("Skipping direct TTS check: preload cancelled")
            return False

        log("Testing direct TTS access...")
        try:
            await self.client.probe_direct()
        except ProbeTimeout as exc:
            log(f"Direct TTS timed out: {exc}")
        except Exception as exc:
            log(f"Direct TTS failed: {exc}")
        else:
            log("Direct TTS reachable")
            return True

        log("All TTS services unreachable")
        return False
