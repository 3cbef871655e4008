import asyncio
import time
from urllib.parse import urlsplit

from fastapi import Request
from fastapi.responses import RedirectResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from clipfetch.config.settings import config
from clipfetch.core.errors import (
    ResponseAborted,
    StreamAbortedError,
    SubprocessExitError,
    SubprocessTimeoutError,
)
from clipfetch.core.logging import log_error, log_info, log_warning
from clipfetch.models.internal import DownloadIntent
from clipfetch.services.locator import tool_locator
from clipfetch.services.stream import ClientDisconnected, DownloadStream, StreamService
from clipfetch.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder, classify_failure
from clipfetch.utils.locale import safe_url_for_log


class SubprocessStreamingResponse(StreamingResponse):
    """StreamingResponse that always closes its DownloadStream, however the response ends"""

    def __init__(self, stream: DownloadStream, **kwargs):
        super().__init__(stream.iter_bytes(), **kwargs)
        self.download_stream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except StreamAbortedError as e:
            stream = self.download_stream
            log_error(
                Request(scope),
                f"Aborting response after {stream.bytes_sent} bytes: {stream.stderr_text[-500:] or 'no diagnostics'}"
            )
            raise ResponseAborted() from e
        finally:
            await self.download_stream.close()


def download_filename(intent: DownloadIntent) -> str:
    return f"video_{int(time.time())}.{intent.selector.ext}"


class DownloadService:
    """
    Download delivery behind one interface.
    download.mode selects stream_to_client (pipe yt-dlp stdout) or
    get_direct_url (redirect to the media URL yt-dlp resolves).
    """

    @staticmethod
    async def deliver(intent: DownloadIntent, request: Request) -> Response:
        if config.download.mode == "redirect":
            return await DownloadService.get_direct_url(intent, request)
        return await DownloadService.stream_to_client(intent, request)

    @staticmethod
    async def stream_to_client(intent: DownloadIntent, request: Request) -> Response:
        """Spawn yt-dlp and stream its stdout; errors before the first byte stay JSON"""
        label = getattr(request.state, "request_id", "download")
        stream = await StreamService.open(intent.url, intent.selector, label=label)

        try:
            await stream.prime(request.is_disconnected)
        except ClientDisconnected:
            # Nobody is listening; the body is never read
            return Response(status_code=499)

        filename = download_filename(intent)
        log_info(request, f"Streaming {intent.kind.value} ({intent.selector.expression}) as {filename}")

        headers = {
            'Content-Disposition': f'attachment; filename="{filename}"',
            'X-Content-Type-Options': 'nosniff',
            'Cache-Control': 'no-cache',
        }
        return SubprocessStreamingResponse(
            stream,
            media_type=intent.selector.media_type,
            headers=headers
        )

    @staticmethod
    async def get_direct_url(intent: DownloadIntent, request: Request) -> Response:
        """Resolve a direct media URL with yt-dlp --get-url and redirect to it"""
        tool = tool_locator.locate()
        cmd = YTDLPCommandBuilder.build_get_url_command(tool, intent.url, intent.selector)

        try:
            result = await SubprocessExecutor.run(
                cmd,
                timeout=config.download.resolve_timeout_seconds,
                max_output=config.metadata.max_output_bytes
            )
        except asyncio.TimeoutError:
            raise SubprocessTimeoutError()

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="replace")
            log_warning(request, f"yt-dlp --get-url exited with {result.returncode}: {error_msg.strip()[-500:]}")
            raise classify_failure(error_msg, "error.direct_url_failed")

        lines = [line.strip() for line in result.stdout.decode(errors="replace").splitlines() if line.strip()]
        direct_url = lines[0] if lines else ""

        if urlsplit(direct_url).scheme not in ("http", "https"):
            raise SubprocessExitError("error.direct_url_failed", reason="no media URL returned")

        log_info(request, f"Redirecting to direct media URL {safe_url_for_log(direct_url)}")
        return RedirectResponse(direct_url, status_code=302)
