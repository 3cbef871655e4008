from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from clipfetch.core.errors import UnsupportedPlatformError, ValidationError
from clipfetch.core.logging import log_info, log_warning
from clipfetch.core.security import prepare_url
from clipfetch.infra.rate_limit import rate_limiter
from clipfetch.models.internal import DownloadIntent, MediaKind
from clipfetch.models.response import ErrorResponse
from clipfetch.services.download import DownloadService
from clipfetch.services.format import FormatDecision
from clipfetch.services.platform import detect_platform
from clipfetch.utils.locale import safe_url_for_log

router = APIRouter()


def parse_media_kind(value: Optional[str]) -> MediaKind:
    try:
        return MediaKind((value or MediaKind.VIDEO.value).strip().lower())
    except ValueError:
        raise ValidationError("error.invalid_format")


@router.get(
    "/api/video/download",
    responses={code: {"model": ErrorResponse} for code in (400, 403, 404, 429, 500, 504)},
    dependencies=[Depends(rate_limiter)]
)
async def download_video(
    request: Request,
    url: Optional[str] = Query(None, description="Video URL"),
    format: str = Query("mp4", description="mp4 (video) or mp3 (audio)"),
    quality: Optional[str] = Query(None, description="1080p/720p/480p/360p or 320/256/192/128"),
    format_id: Optional[str] = Query(None, deprecated=True, description="Ignored; use format and quality"),
):
    """Stream (or redirect to) the video or its audio track"""
    if format_id:
        log_warning(request, "Ignoring unsupported format_id parameter")

    sanitized_url = prepare_url(url)
    kind = parse_media_kind(format)

    platform_info = detect_platform(sanitized_url)
    if not platform_info.is_valid:
        raise UnsupportedPlatformError()

    intent = DownloadIntent(
        url=sanitized_url,
        kind=kind,
        quality=quality,
        platform=platform_info.platform,
        selector=FormatDecision.build_selector(kind, quality, platform_info.platform),
    )

    log_info(request, f"Download requested: {safe_url_for_log(sanitized_url)} format={kind.value} quality={quality or 'default'}")
    return await DownloadService.deliver(intent, request)
