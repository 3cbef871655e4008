import asyncio
import json
import logging
from typing import Any, Dict, Optional

from clipfetch.config.settings import config
from clipfetch.core.errors import MetadataParseError, SubprocessTimeoutError
from clipfetch.models.response import VideoInfo
from clipfetch.services.locator import tool_locator
from clipfetch.services.platform import Platform
from clipfetch.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder, classify_failure

logger = logging.getLogger(__name__)


def _first_thumbnail(info: Dict[str, Any]) -> str:
    thumbnails = info.get("thumbnails")
    if isinstance(thumbnails, list) and thumbnails and isinstance(thumbnails[0], dict):
        return _as_text(thumbnails[0].get("url"))
    return ""


def _as_text(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) and value else default


def _as_seconds(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_size(value: Any) -> Optional[int]:
    try:
        return int(value) if value else None
    except (TypeError, ValueError, OverflowError):
        return None


class VideoInfoService:
    """Video info fetching service"""

    @staticmethod
    def parse(info: Dict[str, Any], platform: Platform) -> VideoInfo:
        """Build the response from a yt-dlp info dict; optional fields degrade to defaults"""
        return VideoInfo(
            id=str(info.get("id") or info.get("display_id") or "unknown"),
            title=_as_text(info.get("title"), "Untitled"),
            thumbnail=_as_text(info.get("thumbnail")) or _first_thumbnail(info),
            duration=_as_seconds(info.get("duration")),
            filesize=_as_size(info.get("filesize") or info.get("filesize_approx")),
            formats=[],
            platform=platform.value,
        )

    @staticmethod
    async def fetch(url: str, platform: Platform) -> VideoInfo:
        """
        Fetch video information for a sanitized URL.
        Bounded by metadata.timeout_seconds and metadata.max_output_bytes; never cached.
        """
        tool = tool_locator.locate()
        cmd = YTDLPCommandBuilder.build_info_command(tool, url)

        try:
            result = await SubprocessExecutor.run(
                cmd,
                timeout=config.metadata.timeout_seconds,
                max_output=config.metadata.max_output_bytes
            )
        except asyncio.TimeoutError:
            raise SubprocessTimeoutError()

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="replace")
            logger.warning(f"yt-dlp exited with {result.returncode}: {error_msg.strip()[-500:]}")
            raise classify_failure(error_msg, "error.fetch_failed")

        try:
            info = json.loads(result.stdout.decode(errors="replace"))
        except json.JSONDecodeError:
            raise MetadataParseError()

        if not isinstance(info, dict):
            raise MetadataParseError()

        return VideoInfoService.parse(info, platform)
