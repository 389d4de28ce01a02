import logging
import os
from contextlib import suppress
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import httpx

from vidrelay.config.settings import CobaltConfig
from vidrelay.core.errors import DownloadFailed, InvalidFormat
from vidrelay.i18n import i18n
from vidrelay.services.extractor import ExtractionProvider
from vidrelay.services.platforms import match_platform
from vidrelay.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)

# format_id -> (downloadMode, extension)
COBALT_FORMATS = {
    "auto": ("auto", "mp4"),
    "audio": ("audio", "mp3"),
    "best": ("auto", "mp4"),
}


class CobaltProvider(ExtractionProvider):
    """
    Extraction through a Cobalt API instance.

    Cobalt has no metadata endpoint, so probe() only reports the two modes it
    supports. fetch() asks Cobalt for a media link, then streams that link to
    disk.
    """

    name = "cobalt"

    def __init__(self, settings: CobaltConfig, client: httpx.AsyncClient, chunk_size: int = 1024 * 1024):
        self.settings = settings
        self.client = client
        self.chunk_size = chunk_size

    async def probe(self, url: str) -> Dict[str, Any]:
        platform = match_platform(url)
        return {
            "extractor": platform.tag if platform else "video",
            "formats": [
                {
                    "format_id": "auto",
                    "resolution": i18n.get("format.cobalt_video"),
                    "format_note": "MP4 via Cobalt",
                    "ext": "mp4",
                },
                {
                    "format_id": "audio",
                    "resolution": i18n.get("format.cobalt_audio"),
                    "format_note": i18n.get("format.audio_only"),
                    "ext": "mp3",
                    "vcodec": "none",
                },
            ],
        }

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.settings.user_agent,
        }
        if self.settings.api_key:
            headers["Authorization"] = f"Api-Key {self.settings.api_key}"
        return headers

    async def resolve_link(self, url: str, mode: str) -> str:
        """First hop: ask Cobalt for a downloadable link"""
        payload = {
            "url": url,
            "videoQuality": self.settings.video_quality,
            "youtubeVideoCodec": self.settings.video_codec,
            "audioFormat": self.settings.audio_format,
            "downloadMode": mode,
        }

        try:
            resp = await self.client.post(
                self.settings.api_url,
                json=payload,
                headers=self._headers(),
                timeout=self.settings.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Cobalt request failed: {e!r}", hop="resolve")

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not resp.is_success or data.get("status") == "error":
            error = data.get("error")
            if isinstance(error, dict):
                detail = error.get("code")
            else:
                detail = data.get("text") or error
            raise DownloadFailed(
                f"Cobalt returned {resp.status_code}: {detail or 'no detail'}",
                hop="resolve",
            )

        link = data.get("url")
        if data.get("status") == "picker" and data.get("picker"):
            link = data["picker"][0].get("url")

        if not link:
            raise DownloadFailed(f"Cobalt returned no link (status {data.get('status')})", hop="resolve")

        return link

    async def stream_to_file(self, link: str, target: Path) -> None:
        """Second hop: streamed copy of the media link into target"""
        try:
            async with self.client.stream("GET", link, timeout=self.settings.timeout_seconds) as resp:
                if not resp.is_success:
                    raise DownloadFailed(
                        f"Media fetch returned {resp.status_code} {resp.reason_phrase}",
                        hop="fetch",
                    )
                async with aiofiles.open(target, "wb") as f:
                    async for chunk in resp.aiter_bytes(self.chunk_size):
                        await f.write(chunk)
        except DownloadFailed:
            self._discard(target)
            raise
        except (httpx.HTTPError, OSError) as e:
            self._discard(target)
            raise DownloadFailed(f"Media fetch failed: {e!r}", hop="fetch")

    @staticmethod
    def _discard(target: Path) -> None:
        with suppress(FileNotFoundError):
            os.remove(target)

    async def fetch(self, url: str, format_id: str, directory: Path, prefix: str) -> Optional[Path]:
        if format_id not in COBALT_FORMATS:
            raise InvalidFormat(format_id)
        mode, ext = COBALT_FORMATS[format_id]

        link = await self.resolve_link(url, mode)
        logger.info(f"Cobalt link resolved for {safe_url_for_log(url)}: {safe_url_for_log(link)}")

        target = directory / f"{prefix}.{ext}"
        await self.stream_to_file(link, target)
        return target

    async def version(self) -> str:
        return "cobalt"
