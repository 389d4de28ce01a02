import logging
from typing import Any, Dict, List, Optional

from vidrelay.core.errors import ExtractionFailed, UnsupportedUrl, VidRelayError
from vidrelay.i18n import i18n
from vidrelay.models.response import FormatDescriptor, VideoMetadata
from vidrelay.services.extractor import ExtractionProvider
from vidrelay.services.platforms import match_platform, normalize_url
from vidrelay.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)


class FormatResolver:
    """Turns whatever the extraction backend reports into VideoMetadata"""

    def __init__(
        self,
        provider: ExtractionProvider,
        max_formats: int,
        placeholder_thumbnail: str,
        default_format: str = "best",
    ):
        self.provider = provider
        self.max_formats = max_formats
        self.placeholder_thumbnail = placeholder_thumbnail
        self.default_format = default_format

    async def resolve(self, url: str) -> VideoMetadata:
        platform = match_platform(url)
        if platform is None:
            raise UnsupportedUrl(url[:200])

        target = normalize_url(url)
        logger.info(f"Probing {safe_url_for_log(target)} via {self.provider.name}")

        try:
            info = await self.provider.probe(target)
        except VidRelayError:
            raise
        except Exception as e:
            raise ExtractionFailed(f"{type(e).__name__}: {e}")

        return VideoMetadata(
            title=info.get("title") or f"Download {platform.label}",
            thumbnail=info.get("thumbnail") or self.placeholder_thumbnail,
            duration=self.normalize_duration(info.get("duration")),
            platform=platform.tag,
            formats=self.normalize_formats(info.get("formats") or []),
        )

    @staticmethod
    def normalize_duration(value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            seconds = round(float(value))
        except (TypeError, ValueError):
            return None
        return max(0, seconds)

    def normalize_formats(self, raw_formats: List[Dict[str, Any]]) -> List[FormatDescriptor]:
        formats: List[FormatDescriptor] = []

        for f in raw_formats:
            if len(formats) >= self.max_formats:
                break
            if not isinstance(f, dict) or not f.get("format_id"):
                continue

            vcodec = f.get("vcodec")
            acodec = f.get("acodec")
            # Storyboards and similar carry neither stream
            if vcodec == "none" and acodec == "none":
                continue

            formats.append(
                FormatDescriptor(
                    format_id=str(f["format_id"]),
                    resolution=self.describe_resolution(f),
                    filesize=self.normalize_filesize(f.get("filesize") or f.get("filesize_approx")),
                    note=f.get("format_note"),
                    ext=f.get("ext"),
                    has_audio=None if acodec is None else acodec != "none",
                    has_video=None if vcodec is None else vcodec != "none",
                )
            )

        if not formats:
            formats.append(
                FormatDescriptor(
                    format_id=self.default_format,
                    resolution=i18n.get("format.best"),
                    note=i18n.get("format.best_note"),
                )
            )

        return formats

    @staticmethod
    def describe_resolution(f: Dict[str, Any]) -> str:
        if f.get("resolution"):
            return str(f["resolution"])
        if f.get("width") and f.get("height"):
            return f"{f['width']}x{f['height']}"
        if f.get("height"):
            return f"{f['height']}p"
        return "unknown"

    @staticmethod
    def normalize_filesize(value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            size = int(value)
        except (TypeError, ValueError):
            return None
        return size if size >= 0 else None
