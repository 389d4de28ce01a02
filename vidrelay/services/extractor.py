from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional


class ExtractionProvider(ABC):
    """
    Opaque extraction capability.

    probe() returns a yt-dlp shaped info dict (title, thumbnail, duration,
    formats[...]); keys a backend cannot provide are simply absent.
    fetch() materializes one format inside `directory` using a file name
    that starts with `prefix`, and may return the produced path.
    """

    name: str = "abstract"

    @abstractmethod
    async def probe(self, url: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def fetch(self, url: str, format_id: str, directory: Path, prefix: str) -> Optional[Path]:
        ...

    async def version(self) -> str:
        return "unknown"
