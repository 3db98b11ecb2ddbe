"""
Conversion error types.

All errors inherit from ConversionError. Only MissingToolError and
ConversionInterrupted end a run; the others are reported per job.
"""

from pathlib import Path
from typing import Optional


class ConversionError(Exception):
    """Base exception for all conversion failures."""
    pass


class MissingToolError(ConversionError):
    """Raised when a required external program is not on PATH."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"{tool} not found. Please install it and try again.")


class ArchiveError(ConversionError):
    """Raised when moving a source into the archive directory fails."""

    def __init__(self, source: Path, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to move '{source}' to archive: {reason}")


class EncodeError(ConversionError):
    """Raised when the encoder exits nonzero or cannot be started."""

    def __init__(self, source: Path, exit_code: Optional[int], reason: Optional[str] = None):
        self.source = source
        self.exit_code = exit_code
        self.reason = reason
        if exit_code is None:
            detail = f"encoder could not be started: {reason}"
        elif reason:
            detail = f"{reason} (exit code {exit_code})"
        else:
            detail = f"ffmpeg exited with code {exit_code}"
        super().__init__(f"Failed to convert '{source}': {detail}")


class ProbeError(ConversionError):
    """Raised when ffprobe cannot read a file."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"ffprobe failed for {path}: {reason}")


class ConversionInterrupted(ConversionError):
    """Raised when a conversion is cancelled by the operator."""

    def __init__(self, source: Path):
        self.source = source
        super().__init__(f"Conversion of '{source}' interrupted by user")
