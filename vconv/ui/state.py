import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from vconv.domain.models import ConversionJob, ProgressSnapshot, RunSummary

# Message levels understood by the dashboard
INFO = "INFO"
INFO2 = "INFO2"
SUCCESS = "SUCCESS"
WARNING = "WARNING"
ERROR = "ERROR"
HEADER = "HEADER"
PLAIN = "PLAIN"

class UIState:
    """Thread-safe state shared by the UIManager and the Dashboard."""

    def __init__(self):
        self._lock = threading.RLock()

        # Counters
        self.completed_count = 0
        self.failed_count = 0
        self.skipped_count = 0
        self.rolled_back_count = 0

        self.total_jobs = 0
        self.files_found = 0
        self.resumed_count = 0
        self.dry_run = False

        # Active jobs: index -> job, index -> latest encoder progress
        self.active_jobs: Dict[int, ConversionJob] = {}
        self.progress: Dict[int, ProgressSnapshot] = {}
        self.job_start_times: Dict[int, datetime] = {}

        # Messages waiting to be printed above the live area
        self._messages: List[Tuple[str, str]] = []

        self.interrupt_requested = False
        self.finished = False
        self.summary: Optional[RunSummary] = None

    @property
    def done_count(self) -> int:
        with self._lock:
            return self.completed_count + self.failed_count + self.skipped_count + self.rolled_back_count

    def push_message(self, level: str, text: str, timestamp: bool = True):
        with self._lock:
            if timestamp:
                text = f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {text}"
            self._messages.append((level, text))

    def drain_messages(self) -> List[Tuple[str, str]]:
        with self._lock:
            messages, self._messages = self._messages, []
            return messages

    def add_active_job(self, job: ConversionJob):
        with self._lock:
            self.active_jobs[job.index] = job
            self.job_start_times[job.index] = datetime.now()

    def update_progress(self, job: ConversionJob, snapshot: ProgressSnapshot):
        with self._lock:
            if job.index in self.active_jobs:
                self.progress[job.index] = snapshot

    def remove_active_job(self, job: ConversionJob):
        with self._lock:
            self.active_jobs.pop(job.index, None)
            self.progress.pop(job.index, None)
            self.job_start_times.pop(job.index, None)

    def snapshot_active(self) -> List[Tuple[ConversionJob, Optional[ProgressSnapshot], Optional[datetime]]]:
        """Active jobs ordered by index, with their latest progress."""
        with self._lock:
            return [
                (self.active_jobs[i], self.progress.get(i), self.job_start_times.get(i))
                for i in sorted(self.active_jobs)
            ]
