import os
from pathlib import Path
from typing import List, Generator
from vconv.domain.models import VideoFile

class FileScanner:
    """Finds video files to convert in a working directory.

    Only the top level is scanned unless recursive=True. The archive and
    converted directories are never treated as sources.
    """

    def __init__(
        self,
        extensions: List[str],
        archive_dir_name: str = "original",
        converted_dir_name: str = "converted",
        recursive: bool = False,
    ):
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
        self.archive_dir_name = archive_dir_name
        self.converted_dir_name = converted_dir_name
        self.recursive = recursive

    def _is_video(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def _reserved(self, name: str) -> bool:
        return name in (self.archive_dir_name, self.converted_dir_name)

    def source_dirs(self, root_dir: Path) -> Generator[Path, None, None]:
        """Yields root_dir and, when recursive, its subdirectories in sorted order."""
        if not self.recursive:
            yield root_dir
            return
        for root, dirs, _files in os.walk(str(root_dir)):
            # Deterministic traversal; never descend into our own output dirs
            dirs[:] = sorted(d for d in dirs if not self._reserved(d))
            yield Path(root)

    def scan_dir(self, directory: Path, resumed: bool = False) -> Generator[VideoFile, None, None]:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except FileNotFoundError:
            return
        for entry in entries:
            path = Path(entry.path)
            if not self._is_video(path):
                continue
            try:
                if not entry.is_file():
                    continue
                size = entry.stat().st_size
            except OSError:
                # Skip files we can't access
                continue
            yield VideoFile(path=path, size_bytes=size, resumed=resumed)

    def scan(self, root_dir: Path) -> Generator[VideoFile, None, None]:
        """Yields the video files waiting in the working directory (or directories)."""
        for directory in self.source_dirs(root_dir):
            yield from self.scan_dir(directory)

    def scan_archived(self, directory: Path) -> Generator[VideoFile, None, None]:
        """Yields the files already moved into directory's archive dir."""
        yield from self.scan_dir(directory / self.archive_dir_name, resumed=True)
