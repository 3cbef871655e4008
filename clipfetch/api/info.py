from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from clipfetch.core.errors import UnsupportedPlatformError
from clipfetch.core.logging import log_info
from clipfetch.core.security import prepare_url
from clipfetch.infra.rate_limit import rate_limiter
from clipfetch.models.request import InfoRequest
from clipfetch.models.response import ErrorResponse, VideoInfo
from clipfetch.services.info import VideoInfoService
from clipfetch.services.platform import detect_platform
from clipfetch.utils.locale import safe_url_for_log

router = APIRouter()

ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 403, 404, 429, 500, 504)}


async def fetch_video_info(request: Request, raw_url: Optional[str]) -> VideoInfo:
    url = prepare_url(raw_url)

    platform_info = detect_platform(url)
    if not platform_info.is_valid:
        raise UnsupportedPlatformError()

    log_info(request, f"Fetching info for {safe_url_for_log(url)} ({platform_info.platform.value})")
    video_info = await VideoInfoService.fetch(url, platform_info.platform)
    log_info(request, f"Info retrieved: {video_info.title}")
    return video_info


@router.post(
    "/api/video/info",
    response_model=VideoInfo,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(rate_limiter)]
)
async def get_video_info(request: Request, video_request: InfoRequest):
    """Get video metadata for a URL in the request body"""
    return await fetch_video_info(request, video_request.url)


@router.get(
    "/api/video/info",
    response_model=VideoInfo,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(rate_limiter)]
)
async def get_video_info_query(request: Request, url: Optional[str] = Query(None, description="Video URL")):
    """Get video metadata for a URL in the query string"""
    return await fetch_video_info(request, url)
