from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field

class JobState(str, Enum):
    DISCOVERED = "DISCOVERED"
    ARCHIVING = "ARCHIVING"
    ARCHIVED = "ARCHIVED"
    CONVERTING = "CONVERTING"
    PUBLISHED = "PUBLISHED"
    SKIPPED = "SKIPPED"  # output already present when the job started
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"  # interrupted, pre-run state restored

TERMINAL_STATES = frozenset({
    JobState.PUBLISHED,
    JobState.SKIPPED,
    JobState.FAILED,
    JobState.ROLLED_BACK,
})

class VideoFile(BaseModel):
    path: Path
    size_bytes: int
    resumed: bool = False  # found in the archive dir, not in the working dir

class ResolvedPaths(BaseModel):
    archive_dir: Path
    converted_dir: Path
    archive_path: Path
    output_path: Path
    temp_path: Path

class ConversionJob(BaseModel):
    index: int
    source_path: Path
    archive_dir: Path
    converted_dir: Path
    archive_path: Path
    output_path: Path
    temp_path: Path
    resumed: bool = False
    state: JobState = JobState.DISCOVERED
    archived_this_run: bool = False
    error_message: Optional[str] = None
    exit_code: Optional[int] = None
    duration_seconds: Optional[float] = None

    @property
    def name(self) -> str:
        return self.source_path.name

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

class ProgressSnapshot(BaseModel):
    """One block of ffmpeg `-progress` output."""
    frame: Optional[str] = None
    fps: Optional[str] = None
    out_time: Optional[str] = None
    speed: Optional[str] = None
    finished: bool = False

    def format_line(self) -> str:
        return (
            f"frame={self.frame or '-'}, fps={self.fps or '-'}, "
            f"time={self.out_time or '-'}, speed={self.speed or '-'}"
        )

class EncodeOutcome(BaseModel):
    exit_code: Optional[int] = None
    interrupted: bool = False
    error_lines: List[str] = Field(default_factory=list)  # non-progress encoder output

    @property
    def succeeded(self) -> bool:
        return not self.interrupted and self.exit_code == 0

class RunSummary(BaseModel):
    planned: int = 0
    published: int = 0
    skipped: int = 0
    failed: int = 0
    rolled_back: int = 0
    not_started: int = 0
    interrupted: bool = False
    dry_run: bool = False
