import logging
from vconv.domain.errors import ArchiveError
from vconv.domain.models import ConversionJob, JobState

class Archiver:
    """Moves sources into the archive directory, and back on rollback."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def archive(self, job: ConversionJob) -> bool:
        """Moves job.source_path to job.archive_path.

        Returns False when a resumed job's file is already archived (nothing
        moved), True when the file was moved. Raises ArchiveError if the move
        fails, or if a different file already occupies the archive slot of a
        newly found source; both files are then left where they are.
        """
        job.state = JobState.ARCHIVING
        if job.archive_path.exists():
            if job.source_path.exists() and not job.resumed:
                self.logger.warning(
                    f"ARCHIVE_EXISTS: '{job.archive_path}' already present; "
                    f"leaving '{job.source_path}' in place"
                )
                raise ArchiveError(job.source_path, f"'{job.archive_path}' already exists")
            self.logger.info(f"ARCHIVE_SKIP: '{job.archive_path}' already archived")
            job.state = JobState.ARCHIVED
            return False

        try:
            job.archive_dir.mkdir(parents=True, exist_ok=True)
            # rename, never copy: the file must not exist in both places
            job.source_path.rename(job.archive_path)
        except OSError as e:
            raise ArchiveError(job.source_path, str(e)) from e

        job.archived_this_run = True
        job.state = JobState.ARCHIVED
        self.logger.info(f"ARCHIVE_MOVED: '{job.source_path}' -> '{job.archive_dir}/'")
        return True

    def restore(self, job: ConversionJob) -> bool:
        """Moves the archived file back to job.source_path.

        Only files archived by this run are restored. Returns True if the
        file was moved back.
        """
        if not job.archived_this_run:
            return False
        if not job.archive_path.exists():
            return False
        if job.source_path.exists():
            self.logger.error(
                f"RESTORE_BLOCKED: '{job.source_path}' exists; leaving '{job.archive_path}' archived"
            )
            return False
        try:
            job.archive_path.rename(job.source_path)
        except OSError as e:
            self.logger.error(f"RESTORE_FAILED: '{job.archive_path}' -> '{job.source_path}': {e}")
            return False
        job.archived_this_run = False
        self.logger.info(f"RESTORED: '{job.archive_path}' -> '{job.source_path}'")
        return True
