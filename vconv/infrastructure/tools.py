import shutil
from typing import Iterable
from vconv.domain.errors import MissingToolError

REQUIRED_TOOLS = ("ffmpeg", "ffprobe")

def require_tools(tools: Iterable[str] = REQUIRED_TOOLS) -> None:
    """Raises MissingToolError for the first tool not found on PATH."""
    for tool in tools:
        if shutil.which(tool) is None:
            raise MissingToolError(tool)
