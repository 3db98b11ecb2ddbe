import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    work_dir: Path,
    debug: bool = False,
    log_file: str = "conversion.log",
    error_log_file: str = "conversion_errors.log",
) -> List[logging.Handler]:
    """
    Attach the conversion log handlers to the root logger.

    Two append-only files are written in work_dir: log_file receives every
    record (DEBUG with debug=True, else INFO) and error_log_file only ERROR
    and above. Handlers installed by an earlier call are replaced.

    Returns the installed handlers so the caller can close them.
    """
    work_dir.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    all_handler = logging.FileHandler(work_dir / log_file, mode="a", encoding="utf-8")
    all_handler.setLevel(level)
    all_handler.setFormatter(formatter)

    error_handler = logging.FileHandler(work_dir / error_log_file, mode="a", encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    handlers: List[logging.Handler] = [all_handler, error_handler]
    logging.basicConfig(level=level, handlers=handlers, force=True)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {work_dir / log_file} (debug={'ON' if debug else 'OFF'})")
    return handlers


def close_logging(handlers: List[logging.Handler]) -> None:
    """Detach and close handlers returned by setup_logging."""
    root = logging.getLogger()
    for handler in handlers:
        root.removeHandler(handler)
        handler.close()


@contextmanager
def logging_session(
    work_dir: Path,
    debug: bool = False,
    log_file: str = "conversion.log",
    error_log_file: str = "conversion_errors.log",
) -> Iterator[logging.Logger]:
    """Scope the log files to a block; they are closed however it exits."""
    handlers = setup_logging(work_dir, debug=debug, log_file=log_file, error_log_file=error_log_file)
    try:
        yield logging.getLogger("vconv")
    finally:
        close_logging(handlers)
