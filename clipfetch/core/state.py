from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis


@dataclass
class RuntimeState:
    """Centralized runtime state"""
    redis: Optional[Redis] = None


state = RuntimeState()
