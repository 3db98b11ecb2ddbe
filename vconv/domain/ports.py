"""Capabilities the pipeline needs from the outside world.

The pipeline is written against these protocols; FFmpegAdapter and
FFprobeAdapter are the production implementations.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol
from vconv.config.models import EncoderProfile
from .models import EncodeOutcome, ProgressSnapshot


class Encoder(Protocol):
    def run(
        self,
        input_path: Path,
        output_path: Path,
        profile: EncoderProfile,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
        tags: Optional[Dict[str, str]] = None,
    ) -> EncodeOutcome:
        ...


class Prober(Protocol):
    def probe_duration(self, file_path: Path) -> float:
        ...

    def read_source_tag(self, file_path: Path) -> Optional[str]:
        ...
