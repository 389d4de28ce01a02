import itertools
import re
import secrets
import time
import unicodedata

_sequence = itertools.count(1)

# <millis>-<sequence>-<6 hex>, followed by "_" or the extension
PREFIX_PATTERN = re.compile(r"^\d+-\d+-[0-9a-f]{6}(?:_|(?=\.))")


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """Sanitize filename for cross-platform compatibility"""
    name = unicodedata.normalize("NFKC", name)
    name = re.sub(r'[\\/:*?"<>|\x00-\x1f]', '_', name)

    windows_reserved = {
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    }
    if name.upper() in windows_reserved:
        name = f"_{name}"

    return name[:max_length].strip()


def unique_prefix() -> str:
    """Prefix that is unique within the process and practically unique across restarts"""
    millis = time.time_ns() // 1_000_000
    return f"{millis}-{next(_sequence)}-{secrets.token_hex(3)}"


def strip_directories(name: str) -> str:
    """Keep only the last path component, treating both separators alike"""
    return name.replace("\\", "/").rsplit("/", 1)[-1]


def display_name(stored_name: str) -> str:
    """Name offered to the client: the stored name without its unique prefix"""
    shown = PREFIX_PATTERN.sub("", stored_name, count=1)
    if not shown or shown.startswith("."):
        shown = f"download{shown}"
    return sanitize_filename(shown)
