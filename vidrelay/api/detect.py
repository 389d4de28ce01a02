from fastapi import APIRouter, Depends, Request

from vidrelay.api.deps import get_resolver
from vidrelay.core.logging import log_info
from vidrelay.infra.rate_limit import rate_limiter
from vidrelay.models.request import DetectRequest
from vidrelay.models.response import DetectResponse
from vidrelay.services.resolver import FormatResolver
from vidrelay.utils.locale import safe_url_for_log

router = APIRouter()

@router.post("/detect", response_model=DetectResponse, dependencies=[Depends(rate_limiter)])
async def detect_formats(
    request: Request,
    detect_request: DetectRequest,
    resolver: FormatResolver = Depends(get_resolver),
):
    """Detect platform, metadata and selectable formats"""
    log_info(request, f"Detect: {safe_url_for_log(detect_request.url)}")

    metadata = await resolver.resolve(detect_request.url)

    log_info(request, f"Detected '{metadata.title}' ({metadata.platform}, {len(metadata.formats)} formats)")
    return DetectResponse(data=metadata)
