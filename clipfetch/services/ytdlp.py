import asyncio
import logging
import os
import signal
from contextlib import suppress
from typing import List, NamedTuple, Optional

from clipfetch.config.settings import config
from clipfetch.core.errors import (
    AuthRequiredError,
    OutputOverflowError,
    SubprocessExitError,
    ToolUnavailableError,
    UnavailableError,
)
from clipfetch.models.internal import FormatSelector
from clipfetch.services.locator import tool_locator

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
STDERR_MAX_BYTES = 64 * 1024
ERROR_REASON_MAX_CHARS = 200

AUTH_REQUIRED_PHRASES = (
    "private video",
    "sign in",
    "login required",
    "requires authentication",
)
UNAVAILABLE_PHRASES = (
    "video unavailable",
    "has been removed",
    "no longer available",
    "http error 404",
)


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


def _session_kwargs() -> dict:
    # Own process group so ffmpeg children die with yt-dlp
    if os.name == "posix":
        return {"start_new_session": True}
    return {}


async def spawn(cmd: List[str]) -> asyncio.subprocess.Process:
    """Start yt-dlp with piped stdout/stderr. Arguments are never shell-joined."""
    try:
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            **_session_kwargs()
        )
    except (FileNotFoundError, PermissionError) as e:
        tool_locator.invalidate()
        logger.error(f"Failed to spawn {cmd[0]}: {e}")
        raise ToolUnavailableError() from e


def send_signal(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signal the process group (POSIX) or the process itself"""
    if process.returncode is not None:
        return
    with suppress(ProcessLookupError):
        if os.name == "posix":
            os.killpg(process.pid, sig)
        elif sig == getattr(signal, "SIGKILL", None):
            process.kill()
        else:
            process.terminate()


async def terminate(process: asyncio.subprocess.Process, grace: float) -> None:
    """SIGTERM, then SIGKILL if the process is still alive after `grace` seconds"""
    if process.returncode is not None:
        return

    send_signal(process, signal.SIGTERM)
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        send_signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        await process.wait()


async def _read_capped(stream: asyncio.StreamReader, limit: Optional[int], strict: bool) -> bytes:
    """Read a pipe to EOF. Over `limit`: raise if strict, else keep draining and truncate."""
    buf = bytearray()
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        if limit is not None and len(buf) + len(chunk) > limit:
            if strict:
                raise OutputOverflowError(limit=limit)
            buf.extend(chunk[:max(0, limit - len(buf))])
            continue
        buf.extend(chunk)
    return bytes(buf)


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        max_output: Optional[int] = None
    ) -> CompletedProcess:
        """
        Run subprocess with timeout, stdout cap and proper cleanup.
        Raises asyncio.TimeoutError or OutputOverflowError; the process is
        killed before either propagates.
        """
        process = await spawn(cmd)

        async def communicate() -> CompletedProcess:
            stdout_task = asyncio.ensure_future(_read_capped(process.stdout, max_output, strict=True))
            stderr_task = asyncio.ensure_future(_read_capped(process.stderr, STDERR_MAX_BYTES, strict=False))
            try:
                stdout = await stdout_task
                stderr = await stderr_task
            finally:
                for task in (stdout_task, stderr_task):
                    if not task.done():
                        task.cancel()
                        with suppress(asyncio.CancelledError):
                            await task
            returncode = await process.wait()
            return CompletedProcess(returncode=returncode, stdout=stdout, stderr=stderr)

        try:
            return await asyncio.wait_for(communicate(), timeout=timeout)
        except BaseException:
            if process.returncode is None:
                send_signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
                await process.wait()
            raise


def summarize_stderr(stderr: str) -> str:
    """Last meaningful stderr line, trimmed for client-facing messages"""
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    if not lines:
        return "unknown error"
    return lines[-1][:ERROR_REASON_MAX_CHARS]


def classify_failure(stderr: str, message_key: str = "error.fetch_failed") -> SubprocessExitError:
    """
    Map yt-dlp diagnostics to an error.
    Best-effort phrase matching; unrecognized text falls through to the generic error.
    """
    text = (stderr or "").lower()

    if any(phrase in text for phrase in AUTH_REQUIRED_PHRASES):
        return AuthRequiredError()
    if any(phrase in text for phrase in UNAVAILABLE_PHRASES):
        return UnavailableError()
    return SubprocessExitError(message_key, reason=summarize_stderr(stderr or ""))


class YTDLPCommandBuilder:
    """Build yt-dlp argument vectors"""

    @staticmethod
    def _common_flags() -> List[str]:
        return [
            '--no-playlist',
            '--no-warnings',
            '--no-check-certificate',
            '--socket-timeout', str(config.ytdlp.socket_timeout),
        ]

    @staticmethod
    def build_info_command(tool: str, url: str) -> List[str]:
        """Build command for fetching video info"""
        return [
            tool,
            '--dump-json',
            '--skip-download',
            *YTDLPCommandBuilder._common_flags(),
            '--', url,
        ]

    @staticmethod
    def build_get_url_command(tool: str, url: str, selector: FormatSelector) -> List[str]:
        """Build command for resolving a direct media URL"""
        return [
            tool,
            '--get-url',
            '-f', selector.direct_expression,
            *selector.platform_flags,
            *YTDLPCommandBuilder._common_flags(),
            '--', url,
        ]

    @staticmethod
    def build_stream_command(tool: str, url: str, selector: FormatSelector) -> List[str]:
        """Build command for streaming download to stdout"""
        return [
            tool,
            '-f', selector.expression,
            *selector.all_flags,
            '-o', '-',
            *YTDLPCommandBuilder._common_flags(),
            # Keep stdout clean: media bytes only
            '--no-progress',
            '--quiet',
            '--', url,
        ]

    @staticmethod
    def build_version_command(tool: str) -> List[str]:
        return [tool, '--version']
