import logging
import threading
from vconv.domain.models import ConversionJob, JobState
from vconv.pipeline.archiver import Archiver

class Publisher:
    """Makes finished outputs visible, or cleans up after failed ones.

    Outputs only ever appear through a rename of the temp file, so a reader
    of the converted directory sees either no output or a complete one.
    """

    def __init__(self, archiver: Archiver):
        self.archiver = archiver
        self.logger = logging.getLogger(__name__)
        # Rollback may be entered by a worker and the interrupt path at once
        self._rollback_lock = threading.Lock()

    def publish(self, job: ConversionJob) -> None:
        """Renames temp_path to output_path. OSError propagates."""
        job.temp_path.rename(job.output_path)
        job.state = JobState.PUBLISHED
        self.logger.info(f"PUBLISHED: '{job.archive_path}' -> '{job.output_path}'")

    def _remove_temp(self, job: ConversionJob) -> bool:
        if not job.temp_path.exists():
            return False
        try:
            job.temp_path.unlink()
        except FileNotFoundError:
            return False
        self.logger.info(f"TEMP_REMOVED: '{job.temp_path}'")
        return True

    def discard(self, job: ConversionJob) -> None:
        """After an encoder failure: drop the temp output, keep the archive.

        The next run finds the archived file without an output and retries
        the conversion only.
        """
        self._remove_temp(job)
        job.state = JobState.FAILED

    def rollback(self, job: ConversionJob) -> bool:
        """After an interrupt: drop the temp output and undo this run's move.

        Safe to call more than once. Returns True if the source was moved
        back to where it was found.
        """
        with self._rollback_lock:
            if job.state in (JobState.PUBLISHED, JobState.ROLLED_BACK):
                return False
            self._remove_temp(job)
            restored = self.archiver.restore(job)
            job.state = JobState.ROLLED_BACK
            self.logger.info(f"ROLLBACK: '{job.source_path}' (source restored={restored})")
            return restored
