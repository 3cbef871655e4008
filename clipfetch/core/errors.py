from typing import Any, Optional


class ClipFetchError(Exception):
    """
    Base error for request handling.
    Carries an HTTP status and an i18n message key; rendered as
    {"error": message} at the endpoint boundary.
    """
    status_code: int = 500
    message_key: str = "error.internal"

    def __init__(self, message_key: Optional[str] = None, **params: Any):
        if message_key:
            self.message_key = message_key
        self.params = params
        super().__init__(self.message_key)


class ValidationError(ClipFetchError):
    """Malformed, missing, oversized or non-public URL, or bad query values"""
    status_code = 400
    message_key = "error.invalid_url"


class UnsupportedPlatformError(ClipFetchError):
    status_code = 400
    message_key = "error.unsupported_platform"


class ToolUnavailableError(ClipFetchError):
    """yt-dlp could not be located or spawned. Not retried."""
    status_code = 500
    message_key = "error.tool_unavailable"


class SubprocessLimitError(ClipFetchError):
    """A bounded subprocess call exceeded its time or output limit"""


class SubprocessTimeoutError(SubprocessLimitError):
    status_code = 504
    message_key = "error.timeout"


class OutputOverflowError(SubprocessLimitError):
    status_code = 500
    message_key = "error.output_overflow"


class MetadataParseError(ClipFetchError):
    status_code = 500
    message_key = "error.parse_failed"


class SubprocessExitError(ClipFetchError):
    """yt-dlp exited non-zero for a reason we could not classify"""
    status_code = 500
    message_key = "error.fetch_failed"


class AuthRequiredError(SubprocessExitError):
    status_code = 403
    message_key = "error.auth_required"


class UnavailableError(SubprocessExitError):
    status_code = 404
    message_key = "error.unavailable"


class StreamAbortedError(ClipFetchError):
    """
    Raised once response bytes are in flight.
    Headers are already sent, so the server can only abort the transfer.
    """
    status_code = 500
    message_key = "error.stream_aborted"


class ResponseAborted(Exception):
    """
    Abort signal for a response whose headers are already sent.
    Deliberately not a ClipFetchError: nothing renders it, the server just
    drops the connection so the client sees an incomplete transfer.
    """
