import asyncio
import logging
import os
import time
from contextlib import suppress
from typing import Optional

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes files in the storage root once they are older than max_age_seconds"""

    def __init__(self, storage_dir: str, max_age_seconds: float, interval_seconds: float = 3600):
        self.storage_dir = storage_dir
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def sweep(self) -> int:
        """One pass over the storage root. Returns the number of files removed."""
        try:
            entries = list(os.scandir(self.storage_dir))
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.error(f"Sweep could not list {self.storage_dir}: {e}")
            return 0

        now = time.time()
        removed = 0

        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                age = now - entry.stat(follow_symlinks=False).st_mtime
                if age <= self.max_age_seconds:
                    continue
                os.remove(entry.path)
                removed += 1
                logger.info(f"Expired file removed: {entry.name} ({age / 3600:.1f}h old)")
            except FileNotFoundError:
                # Delivered and deleted in the meantime
                continue
            except OSError as e:
                logger.warning(f"Failed to remove {entry.name}: {e}")

        if removed:
            logger.info(f"Sweep removed {removed} of {len(entries)} files")
        return removed

    async def run_forever(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Schedule the sweeper; the first pass runs immediately"""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run_forever(), name="retention-sweeper")
        logger.info(
            f"Sweeper started: {self.storage_dir} every {self.interval_seconds}s, "
            f"max age {self.max_age_seconds}s"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Sweeper stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
