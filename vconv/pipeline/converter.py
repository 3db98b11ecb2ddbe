import logging
import threading
from typing import Optional
from vconv.config.models import EncoderProfile
from vconv.domain.errors import ConversionInterrupted, EncodeError, ProbeError
from vconv.domain.events import JobProgressUpdated
from vconv.domain.models import ConversionJob, JobState, ProgressSnapshot
from vconv.domain.ports import Encoder, Prober
from vconv.infrastructure.event_bus import EventBus
from vconv.infrastructure.ffprobe import SOURCE_TAG


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


class ConversionExecutor:
    """Runs the encoder for one job, writing only to its temp path."""

    def __init__(self, encoder: Encoder, prober: Prober, event_bus: EventBus):
        self.encoder = encoder
        self.prober = prober
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def _probe_duration(self, job: ConversionJob) -> Optional[float]:
        try:
            duration = self.prober.probe_duration(job.archive_path)
        except ProbeError as e:
            self.logger.warning(f"DURATION_UNKNOWN: {job.name} ({e.reason})")
            return None
        self.logger.info(f"Duration: {format_duration(duration)} ({job.name})")
        return duration

    def convert(
        self,
        job: ConversionJob,
        profile: EncoderProfile,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Encodes job.archive_path into job.temp_path.

        Returns normally when the encoder exited 0 and left a temp output.
        Raises EncodeError on a nonzero exit or spawn failure and
        ConversionInterrupted when cancel_event was set.
        """
        job.state = JobState.CONVERTING

        # Debris from an earlier interrupted attempt is never a valid output
        if job.temp_path.exists():
            job.temp_path.unlink()
            self.logger.info(f"TEMP_STALE_REMOVED: '{job.temp_path}'")
        job.converted_dir.mkdir(parents=True, exist_ok=True)

        if cancel_event is not None and cancel_event.is_set():
            raise ConversionInterrupted(job.source_path)

        job.duration_seconds = self._probe_duration(job)

        def _on_progress(snapshot: ProgressSnapshot) -> None:
            self.event_bus.publish(JobProgressUpdated(job=job, progress=snapshot))

        self.logger.info(f"CONVERT_START: '{job.archive_path}' -> '{job.temp_path}'")
        try:
            outcome = self.encoder.run(
                job.archive_path,
                job.temp_path,
                profile,
                cancel_event=cancel_event,
                on_progress=_on_progress,
                tags={SOURCE_TAG: job.archive_path.name},
            )
        except OSError as e:
            raise EncodeError(job.archive_path, None, str(e)) from e

        # A nonzero exit while cancelling is the kill, not a codec failure
        cancelled = cancel_event is not None and cancel_event.is_set()
        if outcome.interrupted or (cancelled and not outcome.succeeded):
            raise ConversionInterrupted(job.source_path)

        job.exit_code = outcome.exit_code
        if not outcome.succeeded:
            for line in outcome.error_lines:
                self.logger.error(f"FFMPEG: {job.name}: {line}")
            raise EncodeError(job.archive_path, outcome.exit_code)
        if not job.temp_path.exists():
            raise EncodeError(job.archive_path, outcome.exit_code, "encoder reported success but wrote no output")

        self.logger.info(f"CONVERT_END: '{job.temp_path}' (exit 0)")
