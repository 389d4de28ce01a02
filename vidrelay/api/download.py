from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from vidrelay.api.deps import get_gateway, get_orchestrator
from vidrelay.core.logging import log_info
from vidrelay.infra.concurrency import concurrency_limiter
from vidrelay.infra.rate_limit import rate_limiter
from vidrelay.models.request import DownloadRequest
from vidrelay.models.response import DownloadResponse
from vidrelay.services.delivery import DeliveryGateway
from vidrelay.services.orchestrator import DownloadOrchestrator
from vidrelay.utils.locale import safe_url_for_log

router = APIRouter()

@router.post(
    "/download",
    response_model=DownloadResponse,
    dependencies=[Depends(rate_limiter), Depends(concurrency_limiter)],
)
async def start_download(
    request: Request,
    download_request: DownloadRequest,
    orchestrator: DownloadOrchestrator = Depends(get_orchestrator),
):
    """Materialize the requested format on the server and return its link"""
    log_info(request, f"Download: {safe_url_for_log(download_request.url)} format={download_request.format_id}")

    result = await orchestrator.download(download_request.url, download_request.format_id)

    log_info(request, f"Download ready: {result.filename} ({result.size_bytes} bytes)")
    return DownloadResponse(
        download_url=f"{request.scope.get('root_path', '')}/api/download/file/{quote(result.filename)}",
        filename=result.filename,
        size=result.size_bytes,
    )

@router.get("/download/file/{filename}", dependencies=[Depends(rate_limiter)])
async def serve_file(
    request: Request,
    filename: str,
    gateway: DeliveryGateway = Depends(get_gateway),
):
    """Stream a downloaded file once; it is deleted afterwards"""
    body, headers, media_type = await gateway.deliver(filename)
    log_info(request, f"Serving {filename}")
    return StreamingResponse(body, media_type=media_type, headers=headers)
