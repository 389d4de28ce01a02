import logging
import mimetypes
import os
from pathlib import Path
from typing import AsyncIterator, Dict, Tuple
from urllib.parse import quote

import aiofiles

from vidrelay.core.errors import Forbidden, NotFound
from vidrelay.utils.filename import display_name, strip_directories

logger = logging.getLogger(__name__)


class DeliveryGateway:
    """Serves a stored file once, then deletes it"""

    def __init__(self, storage_dir: str, chunk_size: int = 1024 * 1024):
        self.storage_dir = Path(storage_dir)
        self.chunk_size = chunk_size

    def resolve(self, filename: str) -> Path:
        name = strip_directories(filename)
        if name in ("", ".", "..") or "\x00" in name:
            raise Forbidden(f"rejected name {filename!r}")

        root = self.storage_dir.resolve()
        path = (root / name).resolve()
        if path.parent != root:
            raise Forbidden(f"{filename!r} resolves outside storage")

        if not path.is_file():
            raise NotFound(name)
        return path

    async def deliver(self, filename: str) -> Tuple[AsyncIterator[bytes], Dict[str, str], str]:
        """
        Open the file and return (generator, headers, media_type).
        The generator deletes the file when it finishes, fails or is closed.
        """
        path = self.resolve(filename)
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError:
            raise NotFound(path.name)
        size = os.fstat(handle.fileno()).st_size

        async def generate():
            try:
                while True:
                    chunk = await handle.read(self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
                logger.info(f"Delivered {path.name} ({size} bytes)")
            finally:
                await handle.close()
                self.remove(path)

        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        headers = {
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(display_name(path.name))}",
            "Content-Length": str(size),
            "X-Content-Type-Options": "nosniff",
            "Cache-Control": "no-cache",
        }
        return generate(), headers, media_type

    @staticmethod
    def remove(path: Path) -> None:
        try:
            os.remove(path)
            logger.info(f"Cleaned up {path.name}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {path.name} after delivery: {e}")
