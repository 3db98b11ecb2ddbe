import logging
from pathlib import Path
from typing import List

class HousekeepingService:
    """Removes temp outputs left behind by an interrupted or killed run."""

    def __init__(self, temp_infix: str = "temp", output_extension: str = "mp4"):
        self.temp_suffix = f".{temp_infix}.{output_extension}"
        self.logger = logging.getLogger(__name__)

    def cleanup_temp_files(self, converted_dir: Path) -> List[Path]:
        """Deletes `*.temp.mp4` files directly inside converted_dir.

        Returns the removed paths. Files that cannot be removed are logged
        and left for the per-job cleanup to retry.
        """
        removed: List[Path] = []
        if not converted_dir.is_dir():
            return removed
        for path in sorted(converted_dir.iterdir()):
            if not path.is_file() or not path.name.endswith(self.temp_suffix):
                continue
            try:
                path.unlink()
            except OSError as e:
                self.logger.warning(f"TEMP_CLEANUP_FAILED: {path} ({e})")
                continue
            self.logger.info(f"TEMP_CLEANUP: removed stale {path}")
            removed.append(path)
        return removed
