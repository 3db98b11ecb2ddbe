import subprocess
import shutil
import logging
import threading
import queue
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional
from vconv.config.models import EncoderProfile
from vconv.domain.models import EncodeOutcome, ProgressSnapshot

ProgressCallback = Callable[[ProgressSnapshot], None]

# Grace period between terminate() and kill() when cancelling
TERMINATE_TIMEOUT_S = 3.0
# Error lines kept for the error log
MAX_ERROR_LINES = 20


class ProgressParser:
    """Accumulates ffmpeg `-progress` key=value lines into snapshots.

    ffmpeg writes one block of keys per update, terminated by
    `progress=continue` (or `progress=end` for the last block).
    """

    KEYS = ("frame", "fps", "out_time", "speed")

    def __init__(self):
        self._values: Dict[str, str] = {}

    def feed(self, line: str) -> Optional[ProgressSnapshot]:
        """Consumes one line; returns a snapshot when a block is complete."""
        key, sep, value = line.strip().partition("=")
        if not sep:
            return None
        key = key.strip()
        value = value.strip()
        if key in self.KEYS:
            self._values[key] = value
            return None
        if key == "progress":
            return ProgressSnapshot(finished=(value == "end"), **self._values)
        return None

    @staticmethod
    def is_progress_line(line: str) -> bool:
        key, sep, _ = line.strip().partition("=")
        return bool(sep) and " " not in key.strip() and key.strip() != ""


class FFmpegAdapter:
    """Wrapper around ffmpeg for converting one file to MP4."""

    def __init__(self, binary: str = "ffmpeg", nice: Optional[int] = 10, debug: bool = False):
        self.binary = binary
        self.debug = debug
        self.logger = logging.getLogger(__name__)
        # Lower priority like `nice -n 10 ffmpeg ...` when nice is available
        self._nice_prefix: List[str] = []
        if nice is not None and shutil.which("nice"):
            self._nice_prefix = ["nice", "-n", str(nice)]

    def build_command(
        self,
        input_path: Path,
        output_path: Path,
        profile: EncoderProfile,
        tags: Optional[Dict[str, str]] = None,
    ) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            *self._nice_prefix,
            self.binary,
            "-nostdin",
            "-hide_banner",
            "-loglevel", "error",
            "-y",  # stale temp outputs are removed beforehand; never prompt
            "-progress", "pipe:1",
            "-i", str(input_path),
        ]

        # Video encoding settings
        cmd.extend(["-c:v", profile.video_codec])
        if profile.video_bitrate:
            cmd.extend(["-b:v", profile.video_bitrate])
        if profile.crf is not None:
            cmd.extend(["-crf", str(profile.crf)])
        if profile.preset:
            cmd.extend(["-preset", profile.preset])
        if profile.pix_fmt:
            cmd.extend(["-pix_fmt", profile.pix_fmt])

        # Audio settings
        cmd.extend(["-c:a", profile.audio_codec])
        if profile.audio_bitrate:
            cmd.extend(["-b:a", profile.audio_bitrate])

        cmd.extend(profile.extra_args)

        if tags:
            for key, value in tags.items():
                cmd.extend(["-metadata", f"{key}={value}"])
            cmd.extend(["-movflags", "+use_metadata_tags"])

        # The temp name ends in .mp4 already; be explicit anyway
        cmd.extend(["-f", "mp4", str(output_path)])
        return cmd

    def _stop(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def run(
        self,
        input_path: Path,
        output_path: Path,
        profile: EncoderProfile,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> EncodeOutcome:
        """Runs ffmpeg until it exits or cancel_event is set.

        Raises OSError when the binary cannot be started. The process gets its
        own session so a terminal Ctrl+C reaches only us; we stop it ourselves.
        """
        filename = input_path.name
        cmd = self.build_command(input_path, output_path, profile, tags=tags)
        start_time = time.monotonic()
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            universal_newlines=True,
            bufsize=1,
            start_new_session=True,
        )

        parser = ProgressParser()
        error_lines: List[str] = []
        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        def _reader():
            if not process.stdout:
                output_queue.put(None)
                return
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        while True:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(f"FFMPEG_INTERRUPTED: {filename} (shutdown signal)")
                self._stop(process)
                return EncodeOutcome(exit_code=process.returncode, interrupted=True, error_lines=error_lines)

            try:
                line = output_queue.get(timeout=0.1)
            except queue.Empty:
                if process.poll() is not None and not reader_thread.is_alive():
                    break
                continue

            if line is None:
                break

            snapshot = parser.feed(line)
            if snapshot is not None:
                if on_progress is not None:
                    on_progress(snapshot)
            elif line.strip() and not ProgressParser.is_progress_line(line):
                error_lines.append(line.strip())
                del error_lines[:-MAX_ERROR_LINES]

        process.wait()
        elapsed = time.monotonic() - start_time
        if self.debug:
            self.logger.debug(f"FFMPEG_END: {filename} code={process.returncode} elapsed={elapsed:.2f}s")
        return EncodeOutcome(exit_code=process.returncode, error_lines=error_lines)
