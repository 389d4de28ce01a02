import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from vidrelay.config.settings import YtDlpConfig
from vidrelay.core.errors import DownloadFailed, ExtractionFailed, InvalidFormat
from vidrelay.services.extractor import ExtractionProvider
from vidrelay.utils.locale import safe_url_for_log

logger = logging.getLogger(__name__)

OUTPUT_TITLE_TEMPLATE = "%(title).80s.%(ext)s"
FORMAT_UNAVAILABLE_MARKERS = (
    "requested format is not available",
    "requested format not available",
)


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes

class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        capture_stderr: bool = True
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        Prevents process leaks and ensures consistent error handling.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr if capture_stderr else b""
            )

        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    def __init__(self, settings: YtDlpConfig):
        self.settings = settings

    def _common_options(self) -> List[str]:
        cmd = [
            '--no-playlist',
            '--socket-timeout', str(self.settings.socket_timeout),
            '--retries', str(self.settings.retries),
        ]

        if self.settings.user_agent:
            cmd.extend(['--user-agent', self.settings.user_agent])

        if self.settings.no_check_certificate:
            cmd.append('--no-check-certificate')

        if self.settings.js_runtime:
            cmd.extend(['--js-runtimes', self.settings.js_runtime])

        return cmd

    def build_info_command(self, url: str) -> List[str]:
        """Build command for fetching video info"""
        cmd = [self.settings.binary, '--dump-json']
        cmd.extend(self._common_options())
        cmd.append(url)
        return cmd

    def build_download_command(self, url: str, format_id: str, output_template: str) -> List[str]:
        """Build command that downloads to output_template and prints the final path"""
        cmd = [
            self.settings.binary,
            '-f', format_id,
            '-o', output_template,
            '--restrict-filenames',
            '--no-progress',
            '--no-part',
            '--no-mtime',
            # Printing after_move keeps the download itself enabled
            '--print', 'after_move:filepath',
        ]
        cmd.extend(self._common_options())
        # "--" stops option parsing so the URL can never be read as a flag
        cmd.extend(['--', url])
        return cmd

    def build_version_command(self) -> List[str]:
        return [self.settings.binary, '--version']


class YtDlpProvider(ExtractionProvider):
    """Extraction through the local yt-dlp binary"""

    name = "ytdlp"

    def __init__(self, settings: YtDlpConfig, download_timeout: float):
        self.settings = settings
        self.download_timeout = download_timeout
        self.commands = YTDLPCommandBuilder(settings)

    async def probe(self, url: str) -> Dict[str, Any]:
        cmd = self.commands.build_info_command(url)

        try:
            result = await SubprocessExecutor.run(cmd, timeout=self.settings.info_timeout)
        except asyncio.TimeoutError:
            raise ExtractionFailed(f"yt-dlp timed out after {self.settings.info_timeout}s")
        except OSError as e:
            raise ExtractionFailed(f"yt-dlp could not be started: {e}")

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="ignore").strip()
            raise ExtractionFailed(error_msg[:200] or f"yt-dlp exited with {result.returncode}")

        try:
            info = json.loads(result.stdout.decode(errors="ignore"))
        except json.JSONDecodeError:
            raise ExtractionFailed("Failed to parse yt-dlp output")

        if not isinstance(info, dict):
            raise ExtractionFailed("Unexpected yt-dlp output")

        # yt-dlp lists formats worst first
        info["formats"] = list(reversed(info.get("formats") or []))
        return info

    async def fetch(self, url: str, format_id: str, directory: Path, prefix: str) -> Optional[Path]:
        output_template = str(directory / f"{prefix}_{OUTPUT_TITLE_TEMPLATE}")
        cmd = self.commands.build_download_command(url, format_id, output_template)
        logger.info(f"yt-dlp download started: {safe_url_for_log(url)} (format {format_id})")

        try:
            result = await SubprocessExecutor.run(cmd, timeout=self.download_timeout)
        except asyncio.TimeoutError:
            raise DownloadFailed(f"yt-dlp timed out after {self.download_timeout}s", hop="extract")
        except OSError as e:
            raise DownloadFailed(f"yt-dlp could not be started: {e}", hop="extract")

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="ignore").strip()
            if any(marker in error_msg.lower() for marker in FORMAT_UNAVAILABLE_MARKERS):
                raise InvalidFormat(format_id)
            raise DownloadFailed(error_msg[-200:] or f"yt-dlp exited with {result.returncode}", hop="extract")

        printed = [line.strip() for line in result.stdout.decode(errors="ignore").splitlines() if line.strip()]
        return Path(printed[-1]) if printed else None

    async def version(self) -> str:
        try:
            result = await SubprocessExecutor.run(self.commands.build_version_command(), timeout=10.0)
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"yt-dlp version check failed: {e}")
            return "unavailable"
        if result.returncode != 0:
            return "unavailable"
        return result.stdout.decode(errors="ignore").strip() or "unknown"
