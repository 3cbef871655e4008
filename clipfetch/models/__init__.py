from .internal import DownloadIntent, FormatSelector, MediaKind
from .request import InfoRequest
from .response import ErrorResponse, VideoInfo

__all__ = ["DownloadIntent", "ErrorResponse", "FormatSelector", "InfoRequest", "MediaKind", "VideoInfo"]
