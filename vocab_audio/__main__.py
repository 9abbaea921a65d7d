"""Module entrypoint to run the TTS relay with uvicorn.

Example:
    VOCAB_AUDIO_PORT=8080 python -m vocab_audio
"""

from __future__ import annotations

import uvicorn
from uvicorn.config import Config

from vocab_audio.config import ServiceSettings, configure_logging


def main() -> None:
    settings = ServiceSettings.from_env()
    configure_logging(settings.log_level)
    config = Config(
        app="vocab_audio.api.server:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level,
    )
    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    main()
