import threading
import pytest
import yaml
from pathlib import Path
from typing import Callable, Dict, List, Optional
from vconv.config.models import AppConfig
from vconv.domain.models import EncodeOutcome, ProgressSnapshot
from vconv.infrastructure.event_bus import EventBus
from vconv.infrastructure.ffprobe import SOURCE_TAG
from vconv.infrastructure.file_scanner import FileScanner
from vconv.infrastructure.housekeeping import HousekeepingService
from vconv.pipeline.orchestrator import Orchestrator

# ============================================================================
# Test doubles for ffmpeg / ffprobe
# ============================================================================

class FakeEncoder:
    """Stands in for FFmpegAdapter.

    Writes an output whose first line carries the source tag, followed by
    the input's content, so FakeProber can read attribution back.
    """

    def __init__(
        self,
        fail_names=(),
        fail_exit_code: int = 1,
        block_names=(),
        on_start: Optional[Callable[[Path], None]] = None,
        delay: float = 0.0,
    ):
        self.fail_names = set(fail_names)
        self.fail_exit_code = fail_exit_code
        self.block_names = set(block_names)
        self.on_start = on_start
        self.delay = delay
        self.calls: List[Path] = []
        self.tags: List[Dict[str, str]] = []
        self._lock = threading.Lock()
        self.running = 0
        self.max_running = 0

    def run(self, input_path, output_path, profile, cancel_event=None, on_progress=None, tags=None):
        with self._lock:
            self.calls.append(input_path)
            self.tags.append(dict(tags or {}))
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            if self.on_start is not None:
                self.on_start(input_path)
            name = input_path.name

            if name in self.block_names:
                output_path.write_text("partial")
                if cancel_event is not None:
                    cancel_event.wait(timeout=5)
                return EncodeOutcome(exit_code=255, interrupted=True)

            if self.delay and cancel_event is not None:
                cancel_event.wait(timeout=self.delay)

            if on_progress is not None:
                on_progress(ProgressSnapshot(frame="25", fps="25.0", out_time="00:00:01.000000", speed="1.0x"))
                on_progress(ProgressSnapshot(frame="50", fps="25.0", out_time="00:00:02.000000", speed="1.0x", finished=True))

            if name in self.fail_names:
                output_path.write_text("partial")
                return EncodeOutcome(exit_code=self.fail_exit_code, error_lines=["Invalid data found when processing input"])

            source_name = (tags or {}).get(SOURCE_TAG, "")
            output_path.write_text(f"{SOURCE_TAG}={source_name}\n{input_path.read_text()}")
            return EncodeOutcome(exit_code=0)
        finally:
            with self._lock:
                self.running -= 1


class FakeProber:
    """Stands in for FFprobeAdapter, reading what FakeEncoder wrote."""

    def __init__(self, duration: float = 10.0):
        self.duration = duration

    def probe_duration(self, file_path: Path) -> float:
        return self.duration

    def read_source_tag(self, file_path: Path) -> Optional[str]:
        first_line = file_path.read_text().splitlines()[0] if file_path.stat().st_size else ""
        key, sep, value = first_line.partition("=")
        if sep and key == SOURCE_TAG and value:
            return value
        return None

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "jobs": 1,
            "extensions": [".avi", ".mkv", ".mp4", ".mov"],
            "nice": None,
            "interrupt_timeout_s": 5.0,
            "debug": False,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vconv.yaml"

    content = {
        'general': {
            'jobs': 2,
            'extensions': ['mkv', '.AVI'],
            'debug': True,
        },
        'encoder': {
            'mode': 'hardware',
        },
    }
    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# Infrastructure Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def fake_encoder():
    return FakeEncoder()

@pytest.fixture
def fake_prober():
    return FakeProber()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def work_dir(tmp_path):
    """Creates an empty working directory."""
    directory = tmp_path / "videos"
    directory.mkdir()
    return directory

@pytest.fixture
def dummy_video_files(work_dir):
    """Creates the a.mp4 / a.mkv / b.avi set plus a non-video file."""
    files = []
    for name in ("a.mp4", "a.mkv", "b.avi"):
        path = work_dir / name
        path.write_text(f"content of {name}")
        files.append(path)
    (work_dir / "notes.txt").write_text("not a video")
    return files

@pytest.fixture
def make_orchestrator(sample_config, event_bus, fake_prober):
    """Builds an Orchestrator wired to the fakes."""

    def _make(encoder=None, config=None, dry_run=False, prober=None):
        config = config or sample_config
        general = config.general
        scanner = FileScanner(
            extensions=general.extensions,
            archive_dir_name=general.archive_dir_name,
            converted_dir_name=general.converted_dir_name,
            recursive=general.recursive,
        )
        return Orchestrator(
            config=config,
            event_bus=event_bus,
            file_scanner=scanner,
            encoder=encoder or FakeEncoder(),
            prober=prober or fake_prober,
            housekeeper=HousekeepingService(temp_infix=general.temp_infix),
            dry_run=dry_run,
        )

    return _make


def snapshot_tree(root: Path) -> Dict[str, str]:
    """Relative path -> content for every file under root."""
    return {
        str(p.relative_to(root)): p.read_text()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


@pytest.fixture
def encoder_factory():
    """FakeEncoder class, for tests that need a configured instance."""
    return FakeEncoder


@pytest.fixture
def tree_snapshot():
    return snapshot_tree
