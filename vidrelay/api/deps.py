from fastapi import Depends

from vidrelay.config.settings import config
from vidrelay.core.errors import InternalError
from vidrelay.core.state import state
from vidrelay.services.delivery import DeliveryGateway
from vidrelay.services.extractor import ExtractionProvider
from vidrelay.services.orchestrator import DownloadOrchestrator
from vidrelay.services.resolver import FormatResolver


def get_provider() -> ExtractionProvider:
    if state.provider is None:
        raise InternalError("extraction provider not initialised")
    return state.provider


def get_resolver(provider: ExtractionProvider = Depends(get_provider)) -> FormatResolver:
    return FormatResolver(
        provider,
        max_formats=config.extractor.max_formats,
        placeholder_thumbnail=config.extractor.placeholder_thumbnail,
        default_format=config.extractor.default_format,
    )


def get_orchestrator(provider: ExtractionProvider = Depends(get_provider)) -> DownloadOrchestrator:
    return DownloadOrchestrator(
        provider,
        storage_dir=config.storage.download_dir,
        default_format=config.extractor.default_format,
    )


def get_gateway() -> DeliveryGateway:
    return DeliveryGateway(config.storage.download_dir, chunk_size=config.download.chunk_size)
