from typing import Optional

from pydantic import BaseModel, Field


class InfoRequest(BaseModel):
    # Raw and untrusted: only clipfetch.core.security.prepare_url reads it
    url: Optional[str] = Field(None, description="Video URL")
