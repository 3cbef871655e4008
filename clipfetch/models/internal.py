from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from clipfetch.services.platform import Platform


class MediaKind(str, Enum):
    """User-facing output choice; values are the `format` query values"""
    VIDEO = "mp4"
    AUDIO = "mp3"


class FormatSelector(BaseModel):
    """yt-dlp selector expression plus the flags that go with it"""
    model_config = ConfigDict(frozen=True)

    expression: str
    direct_expression: str
    flags: List[str] = []
    platform_flags: List[str] = []
    ext: str
    media_type: str

    @property
    def all_flags(self) -> List[str]:
        return [*self.flags, *self.platform_flags]


class DownloadIntent(BaseModel):
    """Internal download intent (separated from HTTP concerns)"""
    url: str
    kind: MediaKind
    quality: Optional[str] = None
    platform: Platform
    selector: FormatSelector
