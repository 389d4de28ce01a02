import re
from typing import List, NamedTuple, Optional


class Platform(NamedTuple):
    tag: str
    label: str
    pattern: "re.Pattern[str]"


def _domain_pattern(*domains: str) -> "re.Pattern[str]":
    # Optional scheme, any subdomain, one of the domains, then a non-empty path
    alternation = "|".join(re.escape(d) for d in domains)
    return re.compile(
        rf"^(?:https?://)?(?:[\w-]+\.)*(?:{alternation})(?::\d+)?/\S+$",
        re.IGNORECASE,
    )


PLATFORMS: List[Platform] = [
    Platform("youtube", "YouTube", _domain_pattern("youtube.com", "youtu.be", "youtube-nocookie.com")),
    Platform("tiktok", "TikTok", _domain_pattern("tiktok.com")),
    Platform("instagram", "Instagram", _domain_pattern("instagram.com")),
    Platform("facebook", "Facebook", _domain_pattern("facebook.com", "fb.watch")),
    Platform("twitter", "Twitter", _domain_pattern("twitter.com", "x.com")),
    Platform("vimeo", "Vimeo", _domain_pattern("vimeo.com")),
]


def match_platform(url: str) -> Optional[Platform]:
    """Return the platform whose pattern matches url, if any"""
    candidate = url.strip()
    for platform in PLATFORMS:
        if platform.pattern.match(candidate):
            return platform
    return None


def normalize_url(url: str) -> str:
    """Add https:// to scheme-less URLs"""
    url = url.strip()
    if not re.match(r"^https?://", url, re.IGNORECASE):
        return f"https://{url}"
    return url
