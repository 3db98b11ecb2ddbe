from vconv.infrastructure.event_bus import EventBus
from vconv.ui.state import UIState, INFO, INFO2, SUCCESS, WARNING, ERROR, HEADER, PLAIN
from vconv.pipeline.converter import format_duration
from vconv.domain.events import (
    DiscoveryFinished, PlanReady,
    JobStarted, JobArchived, JobProgressUpdated, JobCompleted, JobSkipped,
    JobFailed, JobRolledBack, InterruptRequested, ProcessingFinished,
)

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(PlanReady, self.on_plan_ready)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobArchived, self.on_job_archived)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobSkipped, self.on_job_skipped)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(JobRolledBack, self.on_job_rolled_back)
        self.bus.subscribe(InterruptRequested, self.on_interrupt_request)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def on_discovery_finished(self, event: DiscoveryFinished):
        with self.state._lock:
            self.state.files_found = event.files_found
            self.state.resumed_count = event.resumed

    def on_plan_ready(self, event: PlanReady):
        with self.state._lock:
            self.state.total_jobs = len(event.jobs)
            self.state.dry_run = event.dry_run

        if not event.jobs:
            self.state.push_message(PLAIN, "There are no files to convert.", timestamp=False)
            return

        self.state.push_message(PLAIN, "\nIdentified files for conversion:", timestamp=False)
        for job in event.jobs:
            note = " (resuming archived file)" if job.resumed else ""
            self.state.push_message(PLAIN, f"{job.index}. {job.source_path}{note}", timestamp=False)

        if event.dry_run:
            total = len(event.jobs)
            for job in event.jobs:
                self.state.push_message(
                    PLAIN,
                    f"📂  Would process file {job.index}/{total}: {job.source_path} -> {job.output_path}",
                    timestamp=False,
                )

    def on_job_started(self, event: JobStarted):
        self.state.add_active_job(event.job)
        self.state.push_message(
            HEADER,
            f"🔥  Processing file {event.job.index}/{event.total}: {event.job.source_path.stem}",
            timestamp=False,
        )

    def on_job_archived(self, event: JobArchived):
        job = event.job
        if event.moved:
            self.state.push_message(INFO, f"Moved '{job.source_path}' to '{job.archive_dir}/'")
        self.state.push_message(INFO, f"Converting '{job.archive_path}' to temporary file '{job.temp_path}'...")

    def on_job_progress(self, event: JobProgressUpdated):
        job = event.job
        with self.state._lock:
            first_update = job.index not in self.state.progress
            self.state.update_progress(job, event.progress)
        if first_update and job.duration_seconds:
            self.state.push_message(INFO2, f"Duration: {format_duration(job.duration_seconds)}")

    def on_job_completed(self, event: JobCompleted):
        with self.state._lock:
            self.state.completed_count += 1
            self.state.remove_active_job(event.job)
        self.state.push_message(
            SUCCESS,
            f"✅ Successfully converted '{event.job.archive_path}' to '{event.job.output_path}'.",
        )

    def on_job_skipped(self, event: JobSkipped):
        with self.state._lock:
            self.state.skipped_count += 1
            self.state.remove_active_job(event.job)
        self.state.push_message(INFO, f"Skipping '{event.job.source_path}': {event.reason}.")

    def on_job_failed(self, event: JobFailed):
        with self.state._lock:
            self.state.failed_count += 1
            self.state.remove_active_job(event.job)
        self.state.push_message(ERROR, f"💀 {event.error_message}")

    def on_job_rolled_back(self, event: JobRolledBack):
        with self.state._lock:
            self.state.rolled_back_count += 1
            self.state.remove_active_job(event.job)
        job = event.job
        if event.restored_source:
            text = f"Interrupted '{job.name}': removed temp output, moved source back to '{job.source_path}'"
        else:
            text = f"Interrupted '{job.name}': removed temp output"
        self.state.push_message(WARNING, text)

    def on_interrupt_request(self, event: InterruptRequested):
        with self.state._lock:
            already = self.state.interrupt_requested
            self.state.interrupt_requested = True
        if not already:
            self.state.push_message(WARNING, "Interrupt received - stopping active conversions and rolling back...")

    def on_processing_finished(self, event: ProcessingFinished):
        summary = event.summary
        with self.state._lock:
            self.state.finished = True
            self.state.summary = summary
        if summary.dry_run or summary.planned == 0:
            return
        level = ERROR if summary.failed else SUCCESS
        self.state.push_message(
            level,
            f"Done: {summary.published} converted, {summary.skipped} skipped, "
            f"{summary.failed} failed, {summary.rolled_back} rolled back, "
            f"{summary.not_started} not started (of {summary.planned})",
        )
