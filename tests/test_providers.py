import asyncio
import json

import httpx
import pytest

from vidrelay.config.settings import CobaltConfig, Config, YtDlpConfig
from vidrelay.core.errors import DownloadFailed, ExtractionFailed, InvalidFormat
from vidrelay.services import ytdlp as ytdlp_module
from vidrelay.services.cobalt import CobaltProvider
from vidrelay.services.factory import build_provider
from vidrelay.services.resolver import FormatResolver
from vidrelay.services.ytdlp import CompletedProcess, YTDLPCommandBuilder, YtDlpProvider

URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
MEDIA = b"ID3" + b"\x01" * 2048


def fake_run(monkeypatch, result=None, error=None):
    calls = []

    async def run(cmd, timeout, capture_stderr=True):
        calls.append(cmd)
        if error:
            raise error
        return result

    monkeypatch.setattr(ytdlp_module.SubprocessExecutor, "run", staticmethod(run))
    return calls


def test_download_command_ends_with_url():
    builder = YTDLPCommandBuilder(YtDlpConfig(js_runtime="deno", no_check_certificate=True))
    cmd = builder.build_download_command("--exec=evil", "22", "/data/p_%(title).80s.%(ext)s")

    assert cmd[0] == "yt-dlp"
    assert cmd[-2:] == ["--", "--exec=evil"]
    assert cmd[cmd.index("-f") + 1] == "22"
    assert cmd[cmd.index("-o") + 1] == "/data/p_%(title).80s.%(ext)s"
    assert cmd[cmd.index("--print") + 1] == "after_move:filepath"
    assert "--no-playlist" in cmd
    assert "--no-check-certificate" in cmd
    assert "--no-mtime" in cmd
    assert cmd[cmd.index("--js-runtimes") + 1] == "deno"


def test_info_command():
    cmd = YTDLPCommandBuilder(YtDlpConfig(user_agent=None)).build_info_command(URL)
    assert cmd[:2] == ["yt-dlp", "--dump-json"]
    assert cmd[-1] == URL
    assert "--user-agent" not in cmd


@pytest.mark.asyncio
async def test_ytdlp_probe_reverses_formats(monkeypatch):
    info = {"title": "t", "formats": [{"format_id": "worst"}, {"format_id": "best"}]}
    fake_run(monkeypatch, CompletedProcess(0, json.dumps(info).encode(), b""))

    probed = await YtDlpProvider(YtDlpConfig(), download_timeout=60).probe(URL)
    assert [f["format_id"] for f in probed["formats"]] == ["best", "worst"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "result, error",
    [
        (CompletedProcess(1, b"", b"ERROR: Video unavailable"), None),
        (CompletedProcess(0, b"not json", b""), None),
        (CompletedProcess(0, b"[1, 2]", b""), None),
        (None, asyncio.TimeoutError()),
        (None, FileNotFoundError("yt-dlp")),
    ],
)
async def test_ytdlp_probe_failures(monkeypatch, result, error):
    fake_run(monkeypatch, result, error)
    with pytest.raises(ExtractionFailed):
        await YtDlpProvider(YtDlpConfig(), download_timeout=60).probe(URL)


@pytest.mark.asyncio
async def test_ytdlp_fetch_returns_printed_path(monkeypatch, tmp_path):
    produced = tmp_path / "p1_Title.mp4"
    calls = fake_run(monkeypatch, CompletedProcess(0, f"[info] merging\n{produced}\n".encode(), b""))

    path = await YtDlpProvider(YtDlpConfig(), download_timeout=60).fetch(URL, "22", tmp_path, "p1")
    assert path == produced
    assert calls[0][calls[0].index("-o") + 1] == str(tmp_path / "p1_%(title).80s.%(ext)s")


@pytest.mark.asyncio
async def test_ytdlp_fetch_unknown_format(monkeypatch, tmp_path):
    fake_run(monkeypatch, CompletedProcess(1, b"", b"ERROR: [youtube] x: Requested format is not available"))
    with pytest.raises(InvalidFormat):
        await YtDlpProvider(YtDlpConfig(), download_timeout=60).fetch(URL, "999", tmp_path, "p1")


@pytest.mark.asyncio
async def test_ytdlp_fetch_failure(monkeypatch, tmp_path):
    fake_run(monkeypatch, CompletedProcess(1, b"", b"ERROR: HTTP Error 403: Forbidden"))
    with pytest.raises(DownloadFailed) as excinfo:
        await YtDlpProvider(YtDlpConfig(), download_timeout=60).fetch(URL, "22", tmp_path, "p1")
    assert excinfo.value.hop == "extract"
    assert "403" in excinfo.value.reason


@pytest.mark.asyncio
async def test_ytdlp_version(monkeypatch):
    fake_run(monkeypatch, CompletedProcess(0, b"2024.08.06\n", b""))
    assert await YtDlpProvider(YtDlpConfig(), download_timeout=60).version() == "2024.08.06"

    fake_run(monkeypatch, error=FileNotFoundError("yt-dlp"))
    assert await YtDlpProvider(YtDlpConfig(), download_timeout=60).version() == "unavailable"


class CobaltServer:
    """httpx.MockTransport handler emulating a Cobalt instance and its media host"""

    def __init__(self, first=None, media_status=200):
        self.first = first or {"status": "tunnel", "url": "https://media.test/file"}
        self.media_status = media_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "cobalt.test":
            is_error = isinstance(self.first, dict) and self.first.get("status") == "error"
            status = 400 if is_error else 200
            return httpx.Response(status, json=self.first)
        if self.media_status != 200:
            return httpx.Response(self.media_status)
        return httpx.Response(200, content=MEDIA)


def cobalt_provider(server, api_key=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    settings = CobaltConfig(api_url="https://cobalt.test/", api_key=api_key)
    return CobaltProvider(settings, client, chunk_size=1024)


@pytest.mark.asyncio
async def test_cobalt_fetch_streams_media(tmp_path):
    server = CobaltServer()
    path = await cobalt_provider(server).fetch(URL, "auto", tmp_path, "p1")

    assert path == tmp_path / "p1.mp4"
    assert path.read_bytes() == MEDIA
    sent = json.loads(server.requests[0].content)
    assert sent["url"] == URL
    assert sent["downloadMode"] == "auto"
    assert sent["videoQuality"] == "1080"
    assert "authorization" not in server.requests[0].headers


@pytest.mark.asyncio
async def test_cobalt_audio_and_api_key(tmp_path):
    server = CobaltServer()
    path = await cobalt_provider(server, api_key="secret").fetch(URL, "audio", tmp_path, "p2")

    assert path.name == "p2.mp3"
    assert json.loads(server.requests[0].content)["downloadMode"] == "audio"
    assert server.requests[0].headers["authorization"] == "Api-Key secret"


@pytest.mark.asyncio
async def test_cobalt_best_maps_to_auto(tmp_path):
    server = CobaltServer()
    path = await cobalt_provider(server).fetch(URL, "best", tmp_path, "p3")
    assert path.suffix == ".mp4"
    assert json.loads(server.requests[0].content)["downloadMode"] == "auto"


@pytest.mark.asyncio
async def test_cobalt_picker_takes_first_item(tmp_path):
    server = CobaltServer(first={"status": "picker", "picker": [{"url": "https://media.test/one"}, {"url": "https://media.test/two"}]})
    await cobalt_provider(server).fetch(URL, "auto", tmp_path, "p4")
    assert str(server.requests[1].url) == "https://media.test/one"


@pytest.mark.asyncio
async def test_cobalt_unknown_format_sends_nothing(tmp_path):
    server = CobaltServer()
    with pytest.raises(InvalidFormat):
        await cobalt_provider(server).fetch(URL, "137", tmp_path, "p5")
    assert server.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "first, expected",
    [
        ({"status": "error", "error": {"code": "error.api.link.unsupported"}}, "error.api.link.unsupported"),
        ({"status": "tunnel"}, "no link"),
        (["https://media.test/file"], "no link"),
    ],
)
async def test_cobalt_resolve_failures(tmp_path, first, expected):
    server = CobaltServer(first=first)
    with pytest.raises(DownloadFailed) as excinfo:
        await cobalt_provider(server).fetch(URL, "auto", tmp_path, "p6")
    assert excinfo.value.hop == "resolve"
    assert expected in excinfo.value.reason
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_cobalt_unreachable(tmp_path):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = CobaltProvider(CobaltConfig(), httpx.AsyncClient(transport=httpx.MockTransport(refuse)))
    with pytest.raises(DownloadFailed) as excinfo:
        await provider.fetch(URL, "auto", tmp_path, "p7")
    assert excinfo.value.hop == "resolve"


@pytest.mark.asyncio
async def test_cobalt_media_error_leaves_no_file(tmp_path):
    server = CobaltServer(media_status=404)
    with pytest.raises(DownloadFailed) as excinfo:
        await cobalt_provider(server).fetch(URL, "auto", tmp_path, "p8")
    assert excinfo.value.hop == "fetch"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_resolver_over_cobalt_probe():
    provider = cobalt_provider(CobaltServer())
    resolver = FormatResolver(provider, max_formats=10, placeholder_thumbnail="https://placehold.test/x.png")
    metadata = await resolver.resolve("https://vimeo.com/76979871")

    assert metadata.platform == "vimeo"
    assert metadata.title == "Download Vimeo"
    assert [f.format_id for f in metadata.formats] == ["auto", "audio"]
    assert metadata.formats[1].has_video is False


def test_factory_selects_backend():
    config = Config()
    assert isinstance(build_provider(config), YtDlpProvider)

    config.extractor.backend = "cobalt"
    client = httpx.AsyncClient()
    assert isinstance(build_provider(config, client), CobaltProvider)
    with pytest.raises(ValueError):
        build_provider(config)
