import asyncio

from fastapi import APIRouter

from clipfetch.config.settings import config
from clipfetch.core.errors import ClipFetchError
from clipfetch.core.state import state
from clipfetch.i18n import i18n
from clipfetch.services.locator import tool_locator
from clipfetch.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder

VERSION_TIMEOUT = 10.0

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "status": i18n.get("health.status"),
        "message": i18n.get("health.running"),
        "service": config.api.title,
        "version": config.api.version,
        "download_mode": config.download.mode,
    }


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    return {"status": i18n.get("health.status")}


@router.get("/health/full")
async def health_check_full():
    """Detailed health check: resolves yt-dlp and asks for its version"""
    missing = i18n.get("health.tool_missing")
    ytdlp_path = None
    ytdlp_version = missing

    try:
        ytdlp_path = tool_locator.locate()
        result = await SubprocessExecutor.run(
            YTDLPCommandBuilder.build_version_command(ytdlp_path),
            timeout=VERSION_TIMEOUT,
            max_output=4096
        )
        if result.returncode == 0:
            ytdlp_version = result.stdout.decode(errors="replace").strip() or missing
    except (ClipFetchError, asyncio.TimeoutError):
        pass

    return {
        "status": i18n.get("health.status"),
        "ytdlp_path": ytdlp_path,
        "ytdlp_version": ytdlp_version,
        "download_mode": config.download.mode,
        "redis_enabled": state.redis is not None,
    }
