import signal
import sys
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from vconv.config.loader import load_config
from vconv.config.models import AppConfig, ENCODER_MODES
from vconv.domain.errors import MissingToolError
from vconv.infrastructure.logging import logging_session
from vconv.infrastructure.event_bus import EventBus
from vconv.infrastructure.file_scanner import FileScanner
from vconv.infrastructure.ffprobe import FFprobeAdapter
from vconv.infrastructure.ffmpeg import FFmpegAdapter
from vconv.infrastructure.housekeeping import HousekeepingService
from vconv.infrastructure.tools import require_tools
from vconv.pipeline.orchestrator import Orchestrator
from vconv.ui.state import UIState
from vconv.ui.manager import UIManager
from vconv.ui.dashboard import Dashboard

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130
EXIT_USAGE = 2  # click's code for bad arguments and unknown options

app = typer.Typer(
    help="vconv - convert a folder of videos to MP4, keeping the originals",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)


def _fail(message: str):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=EXIT_ERROR)


def _apply_overrides(
    config: AppConfig,
    jobs: Optional[int],
    encoder: Optional[str],
    fast: bool,
    recursive: bool,
    no_resume: bool,
    debug: bool,
) -> AppConfig:
    if jobs is not None:
        if jobs < 1:
            _fail(f"--jobs must be at least 1, got {jobs}")
        config.general.jobs = jobs
    if encoder is not None:
        mode = encoder.strip().lower()
        if mode not in ENCODER_MODES:
            _fail(f"Unsupported encoder: {encoder}. Use one of {list(ENCODER_MODES)}")
        config.encoder.mode = mode
    if fast:
        config.encoder.mode = "hardware"
    if recursive:
        config.general.recursive = True
    if no_resume:
        config.general.resume_archived = False
    if debug:
        config.general.debug = True
    return config


def _build_orchestrator(config: AppConfig, bus: EventBus, dry_run: bool) -> Orchestrator:
    general = config.general
    scanner = FileScanner(
        extensions=general.extensions,
        archive_dir_name=general.archive_dir_name,
        converted_dir_name=general.converted_dir_name,
        recursive=general.recursive,
    )
    return Orchestrator(
        config=config,
        event_bus=bus,
        file_scanner=scanner,
        encoder=FFmpegAdapter(nice=general.nice, debug=general.debug),
        prober=FFprobeAdapter(),
        housekeeper=HousekeepingService(temp_infix=general.temp_infix),
        dry_run=dry_run,
    )


def _run(config: AppConfig, work_dir: Path, dry_run: bool) -> int:
    bus = EventBus()
    ui_state = UIState()
    UIManager(bus, ui_state)
    orchestrator = _build_orchestrator(config, bus, dry_run)

    def on_sigterm(signum, frame):
        orchestrator.signal_interrupt("SIGTERM")

    previous_handler = signal.signal(signal.SIGTERM, on_sigterm)
    try:
        with Dashboard(ui_state):
            summary = orchestrator.run(work_dir)
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    return EXIT_INTERRUPTED if summary.interrupted else EXIT_OK


@app.command()
def convert(
    work_dir: Optional[Path] = typer.Argument(
        None,
        help="Directory with the videos to convert (default: current directory)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would be converted; change nothing"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Number of parallel conversions"),
    encoder: Optional[str] = typer.Option(None, "--encoder", "-e", help="Encoder mode: software or hardware"),
    fast: bool = typer.Option(False, "--fast", "-f", help="Use the hardware encoder (same as --encoder hardware)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Also convert videos in subdirectories"),
    no_resume: bool = typer.Option(False, "--no-resume", help="Ignore archived files whose conversion never finished"),
    debug: bool = typer.Option(False, "--debug", help="Enable verbose debug logging"),
):
    """Convert every video in WORK_DIR to MP4.

    Originals are moved to original/ and results written to converted/.
    """
    try:
        require_tools()
    except MissingToolError as e:
        _fail(str(e))

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError, ValidationError, OSError) as e:
        _fail(f"Invalid config: {e}")
    config = _apply_overrides(config, jobs, encoder, fast, recursive, no_resume, debug)

    work_dir = (work_dir or Path.cwd()).resolve()
    if not work_dir.is_dir():
        _fail(f"Not a directory: {work_dir}")

    try:
        if dry_run:
            # Nothing is written in a dry run, log files included
            code = _run(config, work_dir, dry_run=True)
        else:
            general = config.general
            with logging_session(
                work_dir,
                debug=general.debug,
                log_file=general.log_file,
                error_log_file=general.error_log_file,
            ) as logger:
                logger.info(f"vconv started: work_dir={work_dir}")
                logger.info(
                    f"Config: jobs={general.jobs}, encoder={config.encoder.mode}, "
                    f"recursive={general.recursive}, resume={general.resume_archived}, debug={general.debug}"
                )
                code = _run(config, work_dir, dry_run=False)
    except KeyboardInterrupt:
        # Ctrl+C outside the job loop (e.g. while scanning); nothing was moved yet
        typer.secho("\nStopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=EXIT_INTERRUPTED)

    if code == EXIT_INTERRUPTED:
        typer.secho("\nStopped by user; active conversions were rolled back", fg=typer.colors.YELLOW)
    raise typer.Exit(code=code)


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point; usage errors exit with 1 instead of click's 2."""
    try:
        app(args=argv, prog_name="vconv")
    except SystemExit as e:
        code = e.code
    else:
        code = EXIT_OK
    if code is None:
        return EXIT_OK
    if not isinstance(code, int):
        return EXIT_ERROR
    return EXIT_ERROR if code == EXIT_USAGE else code


if __name__ == "__main__":
    sys.exit(main())
