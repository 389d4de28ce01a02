from typing import Optional

import httpx

from vidrelay.config.settings import Config
from vidrelay.services.cobalt import CobaltProvider
from vidrelay.services.extractor import ExtractionProvider
from vidrelay.services.ytdlp import YtDlpProvider


def build_provider(config: Config, http_client: Optional[httpx.AsyncClient] = None) -> ExtractionProvider:
    """Instantiate the extraction backend selected by configuration"""
    backend = config.extractor.backend

    if backend == "ytdlp":
        return YtDlpProvider(config.ytdlp, download_timeout=config.download.timeout_seconds)

    if backend == "cobalt":
        if http_client is None:
            raise ValueError("The cobalt backend needs an HTTP client")
        return CobaltProvider(config.cobalt, http_client, chunk_size=config.download.chunk_size)

    raise ValueError(f"Unknown extraction backend: {backend}")
