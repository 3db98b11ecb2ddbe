"""Domain events for the conversion pipeline.

Events flow through the EventBus and decouple the pipeline from the console
layer. See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import List, Optional
from pathlib import Path
from pydantic import BaseModel
from .models import ConversionJob, ProgressSnapshot, RunSummary


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a single job."""

    job: ConversionJob


class DiscoveryFinished(Event):
    """Emitted after the directory scan."""

    directory: Path
    files_found: int
    resumed: int = 0


class PlanReady(Event):
    """Emitted once every job has been resolved, before any work starts."""

    jobs: List[ConversionJob]
    dry_run: bool = False


class JobStarted(JobEvent):
    """Emitted when a worker picks up a job."""

    total: int


class JobArchived(JobEvent):
    """Emitted when the source is in the archive dir (moved now or earlier)."""

    moved: bool


class JobProgressUpdated(JobEvent):
    """Emitted for every progress block reported by the encoder."""

    progress: ProgressSnapshot


class JobCompleted(JobEvent):
    """Emitted when the output has been published."""

    pass


class JobSkipped(JobEvent):
    """Emitted when the output already existed."""

    reason: str


class JobFailed(JobEvent):
    """Emitted on ArchiveError or EncodeError."""

    error_message: str


class JobRolledBack(JobEvent):
    """Emitted after an interrupted job has been undone."""

    restored_source: bool


class InterruptRequested(Event):
    """Emitted when the operator cancels the run (Ctrl+C or SIGTERM)."""

    reason: Optional[str] = None


class ProcessingFinished(Event):
    """Emitted once the run is over, interrupted or not."""

    summary: RunSummary
