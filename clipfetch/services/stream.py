import asyncio
import logging
from collections import deque
from contextlib import suppress
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from clipfetch.config.settings import config
from clipfetch.core.errors import StreamAbortedError, SubprocessTimeoutError
from clipfetch.models.internal import FormatSelector
from clipfetch.services.locator import tool_locator
from clipfetch.services.ytdlp import YTDLPCommandBuilder, classify_failure, spawn, terminate

logger = logging.getLogger(__name__)

STDERR_MAX_LINES = 50
STDERR_MAX_LINE_CHARS = 4096

DisconnectCheck = Callable[[], Awaitable[bool]]


class StreamState(str, Enum):
    SPAWNED = "spawned"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (StreamState.COMPLETED, StreamState.FAILED, StreamState.CANCELLED)


class ClientDisconnected(Exception):
    """Client went away before the first byte"""


class DownloadStream:
    """
    One yt-dlp process piping media to one HTTP response.

    SPAWNED -> STREAMING -> COMPLETED | FAILED | CANCELLED

    The process is terminated on every exit path; close() is idempotent.
    """

    def __init__(self, process: asyncio.subprocess.Process, label: str = "download"):
        self.process = process
        self.label = label
        self.state = StreamState.SPAWNED
        self.bytes_sent = 0
        self.chunk_size = config.download.chunk_size
        self._first_chunk: bytes = b""
        self._stderr_lines: deque = deque(maxlen=STDERR_MAX_LINES)
        self._stderr_task = asyncio.ensure_future(self._drain_stderr())

    async def _drain_stderr(self) -> None:
        """Drain stderr to prevent buffer deadlock; kept for diagnostics only"""
        # Chunked reads: ffmpeg progress uses bare \r and can overrun readline()
        pending = ""
        while True:
            data = await self.process.stderr.read(4096)
            if not data:
                break
            pending += data.decode(errors="replace").replace("\r", "\n")
            *lines, pending = pending.split("\n")
            for line in lines:
                self._record_stderr(line)
            if len(pending) > STDERR_MAX_LINE_CHARS:
                self._record_stderr(pending)
                pending = ""
        self._record_stderr(pending)

    def _record_stderr(self, line: str) -> None:
        line = line.strip()
        if line:
            self._stderr_lines.append(line)
            logger.debug(f"[{self.label}] yt-dlp: {line}")

    @property
    def stderr_text(self) -> str:
        return "\n".join(self._stderr_lines)

    async def _stderr_settled(self) -> str:
        """Wait briefly for the stderr drain to hit EOF, then return what we have"""
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=config.download.kill_grace_seconds)
        return self.stderr_text

    async def _watch_disconnect(self, is_disconnected: DisconnectCheck) -> None:
        while not await is_disconnected():
            await asyncio.sleep(config.download.disconnect_poll_interval)

    async def prime(self, is_disconnected: Optional[DisconnectCheck] = None) -> None:
        """
        Wait for the first stdout chunk before any header is sent.
        A tool failure here is still reportable as a JSON error.
        """
        read_task = asyncio.ensure_future(self.process.stdout.read(self.chunk_size))
        waiters = {read_task}
        watch_task = None
        if is_disconnected is not None:
            watch_task = asyncio.ensure_future(self._watch_disconnect(is_disconnected))
            waiters.add(watch_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=config.download.first_byte_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            read_task.cancel()
            await self.close(StreamState.CANCELLED)
            raise
        finally:
            if watch_task is not None:
                watch_task.cancel()

        if read_task not in done:
            read_task.cancel()
            if watch_task is not None and watch_task in done:
                logger.info(f"[{self.label}] client disconnected before first byte")
                await self.close(StreamState.CANCELLED)
                raise ClientDisconnected()
            logger.warning(f"[{self.label}] no output within {config.download.first_byte_timeout_seconds}s")
            await self.close(StreamState.FAILED)
            raise SubprocessTimeoutError()

        chunk = read_task.result()
        if not chunk:
            returncode = await self.process.wait()
            if returncode != 0:
                stderr = await self._stderr_settled()
                logger.warning(f"[{self.label}] yt-dlp exited with {returncode} before output: {stderr[-500:]}")
                await self.close(StreamState.FAILED)
                raise classify_failure(stderr, "error.download_failed")

        self._first_chunk = chunk
        self.state = StreamState.STREAMING

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Forward stdout chunks as they arrive; never buffers the whole file"""
        try:
            if self._first_chunk:
                chunk, self._first_chunk = self._first_chunk, b""
                self.bytes_sent += len(chunk)
                yield chunk

            while True:
                chunk = await self.process.stdout.read(self.chunk_size)
                if not chunk:
                    break
                self.bytes_sent += len(chunk)
                yield chunk

            try:
                returncode = await asyncio.wait_for(self.process.wait(), timeout=config.download.kill_grace_seconds)
            except asyncio.TimeoutError:
                returncode = None

            if returncode != 0:
                stderr = await self._stderr_settled()
                logger.error(
                    f"[{self.label}] stream failed after {self.bytes_sent} bytes "
                    f"(exit {returncode}): {stderr[-500:]}"
                )
                await self.close(StreamState.FAILED)
                raise StreamAbortedError()

            self.state = StreamState.COMPLETED
            logger.info(f"[{self.label}] stream completed, {self.bytes_sent} bytes")
        except (asyncio.CancelledError, GeneratorExit):
            if self.state not in TERMINAL_STATES:
                logger.info(f"[{self.label}] stream cancelled after {self.bytes_sent} bytes")
            await self.close(StreamState.CANCELLED)
            raise
        finally:
            await self.close(StreamState.CANCELLED)

    async def close(self, final_state: StreamState = StreamState.CANCELLED) -> None:
        """Terminate the process (if alive) and record the terminal state"""
        if self.state not in TERMINAL_STATES:
            self.state = final_state

        await terminate(self.process, grace=config.download.kill_grace_seconds)

        if not self._stderr_task.done():
            await self._stderr_settled()
        if not self._stderr_task.done():
            self._stderr_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._stderr_task


class StreamService:
    """Video streaming service"""

    @staticmethod
    async def open(url: str, selector: FormatSelector, label: str = "download") -> DownloadStream:
        """Locate yt-dlp and spawn it writing media to stdout"""
        tool = tool_locator.locate()
        cmd = YTDLPCommandBuilder.build_stream_command(tool, url, selector)
        process = await spawn(cmd)
        return DownloadStream(process, label=label)
