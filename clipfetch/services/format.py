from typing import Dict, Optional

from clipfetch.config.settings import config
from clipfetch.models.internal import FormatSelector, MediaKind
from clipfetch.services.platform import Platform

AUDIO_EXPRESSION = "bestaudio/best"

# yt-dlp --audio-quality: 0 is best, 9 is worst
AUDIO_QUALITY: Dict[str, str] = {
    "320": "0",
    "256": "0",
    "192": "5",
    "128": "9",
}
DEFAULT_AUDIO_QUALITY = "0"

VIDEO_HEIGHTS: Dict[str, int] = {
    "1080p": 1080,
    "720p": 720,
    "480p": 480,
    "360p": 360,
}
DEFAULT_VIDEO_QUALITY = "720p"


class FormatDecision:
    """Make format decisions"""

    @staticmethod
    def normalize_quality(quality: Optional[str]) -> str:
        return (quality or "").strip().lower()

    @staticmethod
    def build_selector(kind: MediaKind, quality: Optional[str], platform: Platform) -> FormatSelector:
        """
        Map (format, quality, platform) to a yt-dlp selector.
        Quality is only ever a lookup key, so unknown values fall back to
        defaults and nothing user-supplied reaches the expression.
        """
        tier = FormatDecision.normalize_quality(quality)
        platform_flags = list(config.ytdlp.watermark_flags) if platform == Platform.TIKTOK else []

        if kind == MediaKind.AUDIO:
            return FormatSelector(
                expression=AUDIO_EXPRESSION,
                direct_expression=AUDIO_EXPRESSION,
                flags=[
                    '--extract-audio',
                    '--audio-format', 'mp3',
                    '--audio-quality', AUDIO_QUALITY.get(tier, DEFAULT_AUDIO_QUALITY),
                ],
                platform_flags=platform_flags,
                ext='mp3',
                media_type='audio/mpeg',
            )

        height = VIDEO_HEIGHTS.get(tier, VIDEO_HEIGHTS[DEFAULT_VIDEO_QUALITY])
        return FormatSelector(
            expression=f"bestvideo[height<={height}]+bestaudio/best[height<={height}]",
            # Redirects need a single progressive file
            direct_expression=f"best[height<={height}]/best",
            flags=['--merge-output-format', 'mp4'],
            platform_flags=platform_flags,
            ext='mp4',
            media_type='video/mp4',
        )
