import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from clipfetch.config.settings import config
from clipfetch.core.errors import ToolUnavailableError

logger = logging.getLogger(__name__)


def tool_names(binary_name: str) -> Tuple[str, ...]:
    """Platform-appropriate executable names, preferred first"""
    if os.name == "nt":
        return (f"{binary_name}.exe", binary_name)
    return (binary_name,)


def candidate_paths(
    binary_name: str,
    base_dir: Optional[Path] = None,
    secondary_dir: Optional[Path] = None,
) -> List[Path]:
    """Fixed-location candidates in resolution order (PATH lookup comes after)"""
    base_dir = base_dir or Path.cwd()
    secondary_dir = secondary_dir or base_dir / "bin"

    names = tool_names(binary_name)
    return [directory / name for directory in (base_dir, secondary_dir) for name in names]


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def locate_tool(
    binary_name: Optional[str] = None,
    base_dir: Optional[Path] = None,
    secondary_dir: Optional[Path] = None,
) -> str:
    """
    Resolve the yt-dlp executable.
    Order: working directory, secondary tool directory, then PATH.
    """
    binary_name = binary_name or config.ytdlp.binary_name
    if secondary_dir is None and config.ytdlp.tool_dir:
        secondary_dir = Path(config.ytdlp.tool_dir)

    for candidate in candidate_paths(binary_name, base_dir, secondary_dir):
        if _is_executable(candidate):
            return str(candidate)

    for name in tool_names(binary_name):
        found = shutil.which(name)
        if found:
            return found

    logger.error(f"{binary_name} not found in working directory, tool directory or PATH")
    raise ToolUnavailableError()


class ToolLocator:
    """
    Optional cache in front of locate_tool.
    Disabled unless ytdlp.cache_tool_path is set; dropped whenever a spawn fails.
    """

    def __init__(self):
        self._cached: Optional[str] = None

    def locate(self) -> str:
        if config.ytdlp.cache_tool_path and self._cached:
            return self._cached

        path = locate_tool()
        if config.ytdlp.cache_tool_path:
            self._cached = path
        return path

    def invalidate(self) -> None:
        self._cached = None


tool_locator = ToolLocator()
