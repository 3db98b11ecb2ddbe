"""Pipeline orchestrator for the conversion job lifecycle.

Coordinates discovery, planning and the archive → convert → publish steps of
every job. Uses the EventBus to report progress to the console layer.

Key responsibilities:
- Scan the working directory once (a snapshot) and pick up archived files
  whose conversion never finished
- Claim every output name in a single-threaded planning pass
- Dispatch jobs to a bounded thread pool (submit-on-demand)
- Keep going when a job fails; tally the results
- On interrupt: stop dispatching, cancel running encoders and roll back every
  in-flight job before returning
"""

import threading
import concurrent.futures
import logging
import time
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
from vconv.config.models import AppConfig
from vconv.domain.errors import ArchiveError, ConversionInterrupted, EncodeError, ProbeError
from vconv.domain.events import (
    DiscoveryFinished, PlanReady, JobStarted, JobArchived, JobCompleted, JobSkipped,
    JobFailed, JobRolledBack, InterruptRequested, ProcessingFinished,
)
from vconv.domain.models import ConversionJob, JobState, RunSummary, VideoFile
from vconv.domain.ports import Encoder, Prober
from vconv.infrastructure.event_bus import EventBus
from vconv.infrastructure.file_scanner import FileScanner
from vconv.infrastructure.housekeeping import HousekeepingService
from vconv.pipeline.archiver import Archiver
from vconv.pipeline.converter import ConversionExecutor
from vconv.pipeline.publisher import Publisher
from vconv.pipeline.resolver import OUTPUT_EXTENSION, OutputNameRegistry, PathResolver


class Orchestrator:
    """Video conversion pipeline orchestrator.

    Jobs in flight are kept in a registry keyed by job index; the interrupt
    path walks that registry, so every running job gets rolled back, not just
    the most recently started one.

    Args:
        config: AppConfig with general and encoder settings.
        event_bus: EventBus for publishing job lifecycle events.
        file_scanner: FileScanner for discovering video files.
        encoder: Encoder capability (FFmpegAdapter in production).
        prober: Prober capability (FFprobeAdapter in production).
        housekeeper: Optional HousekeepingService for stale temp outputs.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        file_scanner: FileScanner,
        encoder: Encoder,
        prober: Prober,
        housekeeper: Optional[HousekeepingService] = None,
        dry_run: bool = False,
    ):
        self.config = config
        self.event_bus = event_bus
        self.file_scanner = file_scanner
        self.prober = prober
        self.housekeeper = housekeeper
        self.dry_run = dry_run
        self.logger = logging.getLogger(__name__)

        self.archiver = Archiver()
        self.publisher = Publisher(self.archiver)
        self.executor = ConversionExecutor(encoder, prober, event_bus)

        # Dynamic control state
        self._shutdown_requested = False
        self._shutdown_event = threading.Event()  # Signal encoders to stop
        self._lock = threading.Lock()
        self._rollback_lock = threading.Lock()
        self._signal_pending = False
        self._signal_reason: Optional[str] = None
        self._active_jobs: Dict[int, ConversionJob] = {}

        self.event_bus.subscribe(InterruptRequested, self._on_interrupt_requested)

    @property
    def interrupted(self) -> bool:
        return self._shutdown_requested

    def request_interrupt(self, reason: Optional[str] = None):
        """Asks the run to stop. Publishes InterruptRequested on the calling thread."""
        if self._shutdown_requested:
            return
        self.event_bus.publish(InterruptRequested(reason=reason))

    def signal_interrupt(self, reason: Optional[str] = None):
        """Interrupt entry point for signal handlers.

        Only records the request: no locks, no events. The dispatch loop
        picks it up within one poll interval and calls request_interrupt().
        """
        self._signal_reason = reason
        self._signal_pending = True

    def _pending_signal(self) -> bool:
        """Turns a recorded signal into a regular interrupt request."""
        if self._signal_pending and not self._shutdown_requested:
            self.request_interrupt(self._signal_reason)
        return self._shutdown_requested

    def _on_interrupt_requested(self, event: InterruptRequested):
        self.logger.info(f"Interrupt requested ({event.reason or 'operator'}) - stopping...")
        with self._lock:
            self._shutdown_requested = True
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Discovery & planning
    # ------------------------------------------------------------------

    def _attributed_sources(self, converted_dir: Path) -> Set[str]:
        """Archived basenames that already have a converted output."""
        attributed: Set[str] = set()
        if not converted_dir.is_dir():
            return attributed
        temp_suffix = f".{self.config.general.temp_infix}.{OUTPUT_EXTENSION}"
        for output in sorted(converted_dir.iterdir()):
            if not output.is_file() or output.name.endswith(temp_suffix):
                continue
            if output.suffix.lower() != f".{OUTPUT_EXTENSION}":
                continue
            try:
                source_name = self.prober.read_source_tag(output)
            except ProbeError as e:
                self.logger.warning(f"TAG_UNREADABLE: {output} ({e.reason})")
                continue
            if source_name:
                attributed.add(source_name)
        return attributed

    def _find_resumable(self, directory: Path, fresh_names: Set[str]) -> List[VideoFile]:
        """Archived files in directory with no finished conversion.

        They are returned at the location they had before being archived.
        """
        archived = [
            vf for vf in self.file_scanner.scan_archived(directory)
            if vf.path.name not in fresh_names
        ]
        if not archived:
            return []
        converted_dir = directory / self.config.general.converted_dir_name
        attributed = self._attributed_sources(converted_dir)
        return [
            VideoFile(path=directory / vf.path.name, size_bytes=vf.size_bytes, resumed=True)
            for vf in archived
            if vf.path.name not in attributed
        ]

    def _perform_discovery(self, work_dir: Path) -> Tuple[List[VideoFile], Dict[str, int]]:
        """Scans work_dir once and returns (candidates, stats)."""
        candidates: List[VideoFile] = []
        stats = {'files_found': 0, 'resumed': 0}

        for directory in self.file_scanner.source_dirs(work_dir):
            fresh = list(self.file_scanner.scan_dir(directory))
            resumed: List[VideoFile] = []
            if self.config.general.resume_archived:
                resumed = self._find_resumable(directory, {vf.path.name for vf in fresh})
            stats['files_found'] += len(fresh)
            stats['resumed'] += len(resumed)
            candidates.extend(fresh)
            candidates.extend(resumed)
            if self.config.general.debug:
                self.logger.debug(
                    f"DISCOVERY ({directory}): fresh={len(fresh)}, resumed={len(resumed)}"
                )

        return candidates, stats

    def _cleanup_stale_temps(self, work_dir: Path):
        if self.housekeeper is None or self.dry_run:
            return
        for directory in self.file_scanner.source_dirs(work_dir):
            self.housekeeper.cleanup_temp_files(directory / self.config.general.converted_dir_name)

    def plan(self, work_dir: Path) -> List[ConversionJob]:
        """Discovers candidates and resolves every job's paths.

        Runs on the calling thread only, so output names are claimed in
        discovery order before any worker exists.
        """
        candidates, stats = self._perform_discovery(work_dir)
        self.logger.info(
            f"Discovery finished: found={stats['files_found']}, resumed={stats['resumed']}"
        )
        self.event_bus.publish(DiscoveryFinished(
            directory=work_dir,
            files_found=stats['files_found'],
            resumed=stats['resumed'],
        ))

        resolver = PathResolver(self.config.general, OutputNameRegistry(self.config.general.temp_infix))
        jobs = [
            resolver.build_job(vf.path, index=i, resumed=vf.resumed)
            for i, vf in enumerate(candidates, start=1)
        ]
        self.event_bus.publish(PlanReady(jobs=jobs, dry_run=self.dry_run))
        return jobs

    # ------------------------------------------------------------------
    # Per-job processing
    # ------------------------------------------------------------------

    def _fail(self, job: ConversionJob, error: Exception):
        job.state = JobState.FAILED
        job.error_message = str(error)
        self.logger.error(str(error))
        self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))

    def _roll_back(self, job: ConversionJob, reason: str):
        # A worker and the forced drain can both get here for one job
        with self._rollback_lock:
            if job.state == JobState.ROLLED_BACK:
                return
            restored = self.publisher.rollback(job)
            job.error_message = reason
        self.logger.warning(f"ROLLED_BACK: {job.name} ({reason})")
        self.event_bus.publish(JobRolledBack(job=job, restored_source=restored))

    def _process_job(self, job: ConversionJob, total: int):
        """Runs one job end to end: archive → convert → publish."""
        with self._lock:
            if self._shutdown_requested:
                return
            self._active_jobs[job.index] = job

        start_time = time.monotonic()
        self.logger.info(f"PROCESS_START: {job.index}/{total} '{job.source_path}'")
        self.event_bus.publish(JobStarted(job=job, total=total))

        try:
            if job.output_path.exists():
                job.state = JobState.SKIPPED
                self.logger.info(f"Skipping '{job.source_path}': already converted ({job.output_path}).")
                self.event_bus.publish(JobSkipped(job=job, reason="already converted"))
                return

            try:
                moved = self.archiver.archive(job)
            except ArchiveError as e:
                self._fail(job, e)
                return
            self.event_bus.publish(JobArchived(job=job, moved=moved))

            try:
                self.executor.convert(job, self.config.encoder.active_profile, self._shutdown_event)
            except ConversionInterrupted as e:
                self._roll_back(job, str(e))
                return
            except EncodeError as e:
                self.publisher.discard(job)
                self._fail(job, e)
                return

            try:
                self.publisher.publish(job)
            except OSError as e:
                self.publisher.discard(job)
                self._fail(job, e)
                return
            self.event_bus.publish(JobCompleted(job=job))

        except Exception as e:
            # Unexpected failure: never leave a temp output or a half-migrated file
            self.logger.error(f"Exception processing {job.name}: {e}")
            if self._shutdown_requested:
                self._roll_back(job, f"Exception during shutdown: {e}")
            else:
                self.publisher.discard(job)
                self._fail(job, e)
        finally:
            with self._lock:
                self._active_jobs.pop(job.index, None)
            elapsed = time.monotonic() - start_time
            self.logger.info(f"PROCESS_END: {job.name} state={job.state.value} elapsed={elapsed:.2f}s")

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _drain(self, in_flight: Dict[concurrent.futures.Future, ConversionJob]):
        """Waits (bounded) for running jobs to roll back, then rolls back stragglers."""
        for future in list(in_flight):
            if not future.done():
                future.cancel()

        timeout = self.config.general.interrupt_timeout_s
        self.logger.info(f"Waiting for active conversions to stop (max {timeout:.0f}s)...")
        deadline = time.monotonic() + timeout
        while True:
            running = [f for f in in_flight if not f.done()]
            remaining = deadline - time.monotonic()
            if not running or remaining <= 0:
                break
            try:
                concurrent.futures.wait(
                    running,
                    timeout=min(0.2, remaining),
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
            except KeyboardInterrupt:
                self.logger.info("Already stopping; waiting for rollbacks to finish")

        with self._lock:
            stragglers = list(self._active_jobs.values())
        for job in stragglers:
            if not job.is_finished:
                self.logger.warning(f"ROLLBACK_FORCED: {job.name} did not stop in {timeout:.0f}s")
                self._roll_back(job, "Interrupted by user (forced after timeout)")

    def _summarize(self, jobs: List[ConversionJob]) -> RunSummary:
        summary = RunSummary(planned=len(jobs), dry_run=self.dry_run, interrupted=self._shutdown_requested)
        for job in jobs:
            if job.state == JobState.PUBLISHED:
                summary.published += 1
            elif job.state == JobState.SKIPPED:
                summary.skipped += 1
            elif job.state == JobState.FAILED:
                summary.failed += 1
            elif job.state == JobState.ROLLED_BACK:
                summary.rolled_back += 1
            else:
                summary.not_started += 1
        return summary

    def run(self, work_dir: Path) -> RunSummary:
        self.logger.info(f"Run started: {work_dir} (dry_run={self.dry_run})")
        self._cleanup_stale_temps(work_dir)
        jobs = self.plan(work_dir)

        if self.dry_run or not jobs:
            if not jobs:
                self.logger.info("No files to convert")
            summary = self._summarize(jobs)
            self.event_bus.publish(ProcessingFinished(summary=summary))
            return summary

        total = len(jobs)
        max_workers = self.config.general.jobs
        pending = deque(jobs)
        in_flight: Dict[concurrent.futures.Future, ConversionJob] = {}

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vconv")

        def submit_batch():
            """Submit jobs up to the worker limit"""
            while len(in_flight) < max_workers and pending and not self._shutdown_requested:
                job = pending.popleft()
                future = executor.submit(self._process_job, job, total)
                in_flight[future] = job

        try:
            self._pending_signal()
            submit_batch()
            while in_flight:
                done, _ = concurrent.futures.wait(
                    set(in_flight),
                    timeout=0.5,
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                for future in done:
                    try:
                        future.result()
                    except concurrent.futures.CancelledError:
                        pass
                    except Exception as e:
                        self.logger.error(f"Worker failed with exception: {e}")
                    del in_flight[future]

                if self._pending_signal():
                    self._drain(in_flight)
                    break

                submit_batch()
        except KeyboardInterrupt:
            self.logger.info("Ctrl+C detected - stopping new jobs and rolling back active ones...")
            self.request_interrupt("Ctrl+C")
            self._drain(in_flight)
        finally:
            executor.shutdown(wait=not self._shutdown_requested, cancel_futures=True)

        summary = self._summarize(jobs)
        self.logger.info(
            f"Run finished: planned={summary.planned}, published={summary.published}, "
            f"skipped={summary.skipped}, failed={summary.failed}, "
            f"rolled_back={summary.rolled_back}, not_started={summary.not_started}, "
            f"interrupted={summary.interrupted}"
        )
        self.event_bus.publish(ProcessingFinished(summary=summary))
        return summary
