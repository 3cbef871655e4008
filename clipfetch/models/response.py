from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class VideoInfo(BaseModel):
    """Video information response"""
    id: str
    title: str
    thumbnail: str = ""
    duration: int = 0
    filesize: Optional[int] = None
    formats: List[Dict[str, Any]] = []
    platform: str


class ErrorResponse(BaseModel):
    """Error body for every non-2xx JSON response"""
    error: str
