import copy
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import pytest
import pytest_asyncio

from vidrelay.config.settings import config
from vidrelay.core.errors import InvalidFormat
from vidrelay.core.state import state
from vidrelay.main import app
from vidrelay.services.extractor import ExtractionProvider

PAYLOAD = b"\x00\x00\x00\x18ftypmp42" + b"x" * 4096

YOUTUBE_INFO: Dict[str, Any] = {
    "id": "dQw4w9WgXcQ",
    "title": "Rick Astley - Never Gonna Give You Up",
    "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/maxresdefault.jpg",
    "duration": 212,
    "extractor": "youtube",
    "formats": [
        {"format_id": "22", "ext": "mp4", "resolution": "1280x720", "vcodec": "avc1", "acodec": "mp4a", "filesize": 1000},
        {"format_id": "18", "ext": "mp4", "resolution": "640x360", "vcodec": "avc1", "acodec": "mp4a", "filesize": 500},
        {"format_id": "140", "ext": "m4a", "resolution": "audio only", "vcodec": "none", "acodec": "mp4a", "format_note": "medium"},
        {"format_id": "sb0", "ext": "mhtml", "vcodec": "none", "acodec": "none"},
    ],
}


class FakeProvider(ExtractionProvider):
    """In-process stand-in for the extraction backend"""

    name = "fake"

    def __init__(
        self,
        info: Optional[Dict[str, Any]] = None,
        formats=("best", "22", "18", "140"),
        payload: bytes = PAYLOAD,
        report_path: bool = True,
        reported: Optional[Path] = None,
        write: bool = True,
        partial: bool = False,
        error: Optional[Exception] = None,
    ):
        self.info = info if info is not None else YOUTUBE_INFO
        self.formats = set(formats)
        self.payload = payload
        self.report_path = report_path
        self.reported = reported
        self.write = write
        self.partial = partial
        self.error = error
        self.probe_calls = []
        self.fetch_calls = []

    async def probe(self, url: str) -> Dict[str, Any]:
        self.probe_calls.append(url)
        if self.error:
            raise self.error
        return copy.deepcopy(self.info)

    async def fetch(self, url: str, format_id: str, directory: Path, prefix: str) -> Optional[Path]:
        self.fetch_calls.append((url, format_id, prefix))
        if self.partial:
            (directory / f"{prefix}_Test_Video.mp4.part").write_bytes(b"half")
        if self.error:
            raise self.error
        if format_id not in self.formats:
            raise InvalidFormat(format_id)
        if not self.write:
            return None
        path = directory / f"{prefix}_Test_Video.mp4"
        path.write_bytes(self.payload)
        if self.reported is not None:
            return self.reported
        return path if self.report_path else None

    async def version(self) -> str:
        return "fake-1.0"


@pytest.fixture
def storage(tmp_path, monkeypatch):
    root = tmp_path / "downloads"
    root.mkdir()
    monkeypatch.setattr(config.storage, "download_dir", str(root))
    return root


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest_asyncio.fixture
async def client(storage, fake_provider, monkeypatch):
    monkeypatch.setattr(state, "provider", fake_provider)
    monkeypatch.setattr(state, "redis", None)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
