"""Output name resolution and job construction.

Every job's output name is claimed through an OutputNameRegistry before any
worker starts, so two sources sharing a stem (``a.mp4`` and ``a.mkv``) end up
with ``a.mp4`` and ``a (1).mp4`` instead of racing for the same file.
"""

import threading
from pathlib import Path
from typing import Set
from vconv.config.models import GeneralConfig
from vconv.domain.models import ConversionJob, ResolvedPaths

OUTPUT_EXTENSION = "mp4"


class OutputNameRegistry:
    """Output and temp paths claimed during one run.

    A job writes its temp file next to its output, so both names are claimed
    together and no job's output can be another job's temp file.
    """

    def __init__(self, temp_infix: str = "temp"):
        self.temp_infix = temp_infix
        self._claimed: Set[Path] = set()
        self._lock = threading.Lock()

    def _taken(self, candidate: Path) -> bool:
        # Housekeeping deletes anything named like a temp file
        if candidate.name.endswith(f".{self.temp_infix}{candidate.suffix}"):
            return True
        if candidate in self._claimed or candidate.exists():
            return True
        # A temp file already on disk is debris of an earlier run and gets
        # removed before conversion, so only claims count here
        return temp_path_for(candidate, self.temp_infix) in self._claimed

    def claim_unique(self, converted_dir: Path, stem: str, ext: str = OUTPUT_EXTENSION) -> Path:
        """Returns the first of ``stem.ext``, ``stem (1).ext``, ... that is
        neither on disk nor claimed already, and claims it with its temp path."""
        with self._lock:
            candidate = converted_dir / f"{stem}.{ext}"
            counter = 1
            while self._taken(candidate):
                candidate = converted_dir / f"{stem} ({counter}).{ext}"
                counter += 1
            self._claimed.add(candidate)
            self._claimed.add(temp_path_for(candidate, self.temp_infix))
            return candidate

    def release(self, path: Path) -> None:
        with self._lock:
            self._claimed.discard(path)
            self._claimed.discard(temp_path_for(path, self.temp_infix))

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return path in self._claimed


def temp_path_for(output_path: Path, infix: str = "temp") -> Path:
    """``converted/a (1).mp4`` -> ``converted/a (1).temp.mp4``"""
    return output_path.with_name(f"{output_path.stem}.{infix}{output_path.suffix}")


class PathResolver:
    """Computes archive/output locations for a source file."""

    def __init__(self, config: GeneralConfig, registry: OutputNameRegistry):
        self.config = config
        self.registry = registry

    def resolve(self, source: Path) -> ResolvedPaths:
        parent = source.parent
        archive_dir = parent / self.config.archive_dir_name
        converted_dir = parent / self.config.converted_dir_name
        # Basename kept verbatim, only the last extension is dropped
        output_path = self.registry.claim_unique(converted_dir, source.stem)
        return ResolvedPaths(
            archive_dir=archive_dir,
            converted_dir=converted_dir,
            archive_path=archive_dir / source.name,
            output_path=output_path,
            temp_path=temp_path_for(output_path, self.config.temp_infix),
        )

    def build_job(self, source: Path, index: int, resumed: bool = False) -> ConversionJob:
        """Builds a DISCOVERED job for a file found in the working directory.

        For a resumed job, source is the location the file had before it was
        archived.
        """
        paths = self.resolve(source)
        return ConversionJob(
            index=index,
            source_path=source,
            resumed=resumed,
            **paths.model_dump(),
        )
