from enum import Enum
from typing import NamedTuple, Tuple
from urllib.parse import urlsplit


class Platform(str, Enum):
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    REDDIT = "reddit"
    DAILYMOTION = "dailymotion"
    UNKNOWN = "unknown"


class PlatformInfo(NamedTuple):
    platform: Platform
    is_valid: bool


HOST_PATTERNS: Tuple[Tuple[Platform, Tuple[str, ...]], ...] = (
    (Platform.YOUTUBE, ("youtube.com", "youtu.be")),
    (Platform.TIKTOK, ("tiktok.com",)),
    (Platform.INSTAGRAM, ("instagram.com",)),
    (Platform.FACEBOOK, ("facebook.com", "fb.com", "fb.watch")),
    (Platform.TWITTER, ("twitter.com", "x.com")),
    (Platform.REDDIT, ("reddit.com",)),
    (Platform.DAILYMOTION, ("dailymotion.com", "dai.ly")),
)

UNKNOWN = PlatformInfo(Platform.UNKNOWN, False)


def detect_platform(url: str) -> PlatformInfo:
    """Classify a sanitized URL by hostname. Total: never raises."""
    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return UNKNOWN

    if not hostname:
        return UNKNOWN

    for platform, needles in HOST_PATTERNS:
        if any(needle in hostname for needle in needles):
            return PlatformInfo(platform, True)

    return UNKNOWN
