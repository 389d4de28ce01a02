import logging
import os
from contextlib import suppress
from pathlib import Path
from typing import List, Optional

from vidrelay.core.errors import DownloadFailed, FileMissing, UnsupportedUrl, VidRelayError
from vidrelay.models.internal import DownloadResult
from vidrelay.services.extractor import ExtractionProvider
from vidrelay.services.platforms import match_platform, normalize_url
from vidrelay.utils.filename import unique_prefix
from vidrelay.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)

# Leftovers of an interrupted extraction, never a finished download
TEMP_SUFFIXES = (".part", ".ytdl", ".temp", ".tmp")


class DownloadOrchestrator:
    """
    Materializes one format of a video inside the storage root.

    Every file produced for a request starts with a prefix generated here, so
    the result can be found even when the backend picks the final name, and
    everything belonging to a failed request can be removed.
    """

    def __init__(self, provider: ExtractionProvider, storage_dir: str, default_format: str = "best"):
        self.provider = provider
        self.storage_dir = Path(storage_dir)
        self.default_format = default_format

    async def download(self, url: str, format_id: Optional[str] = None) -> DownloadResult:
        if match_platform(url) is None:
            raise UnsupportedUrl(url[:200])

        target = normalize_url(url)
        format_id = format_id or self.default_format

        self.storage_dir.mkdir(parents=True, exist_ok=True)
        prefix = unique_prefix()
        logger.info(f"Download {prefix}: {safe_url_for_log(target)} format={format_id} via {self.provider.name}")

        try:
            produced = await self.provider.fetch(target, format_id, self.storage_dir, prefix)
            path = self.locate(produced, prefix)
            size = path.stat().st_size
        except VidRelayError:
            self.discard(prefix)
            raise
        except OSError as e:
            self.discard(prefix)
            raise DownloadFailed(f"{type(e).__name__}: {e}", hop="io")
        except Exception as e:
            self.discard(prefix)
            raise DownloadFailed(f"{type(e).__name__}: {e}", hop="extract")

        logger.info(f"Download {prefix} finished: {path.name} ({size / 1024 / 1024:.1f} MB)")
        return DownloadResult(filename=path.name, filepath=str(path.resolve()), size_bytes=size)

    def candidates(self, prefix: str) -> List[Path]:
        try:
            names = os.listdir(self.storage_dir)
        except FileNotFoundError:
            return []
        return sorted(self.storage_dir / name for name in names if name.startswith(prefix))

    def locate(self, produced: Optional[Path], prefix: str) -> Path:
        """Find the finished file for prefix, preferring the path the backend reported"""
        root = self.storage_dir.resolve()

        if produced is not None:
            produced = Path(produced)
            if (
                produced.name.startswith(prefix)
                and produced.is_file()
                and produced.resolve().parent == root
            ):
                return produced
            logger.warning(f"Download {prefix}: reported path {produced} not usable, scanning storage")

        finished = [
            p for p in self.candidates(prefix)
            if p.is_file() and not p.name.endswith(TEMP_SUFFIXES)
        ]
        if not finished:
            raise FileMissing(f"no file starting with {prefix} in {self.storage_dir}")
        if len(finished) > 1:
            # Unmerged streams can linger; keep the largest
            finished.sort(key=lambda p: p.stat().st_size, reverse=True)
            for extra in finished[1:]:
                with suppress(FileNotFoundError):
                    extra.unlink()
        return finished[0]

    def discard(self, prefix: str) -> None:
        """Remove every file belonging to a failed request"""
        for path in self.candidates(prefix):
            try:
                path.unlink()
                logger.info(f"Removed partial file {path.name}")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove partial file {path.name}: {e}")
