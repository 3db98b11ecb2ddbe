import subprocess
import json
from pathlib import Path
from typing import Dict, Any, Optional
from vconv.domain.errors import ProbeError

SOURCE_TAG = "VCONV_SOURCE"

class FFprobeAdapter:
    """Wrapper around ffprobe for duration and container tags."""

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        if ":" in text:
            parts = text.split(":")
            if len(parts) in (2, 3):
                try:
                    parts_f = [float(p) for p in parts]
                except ValueError:
                    return 0.0
                if len(parts_f) == 2:
                    minutes, seconds = parts_f
                    return minutes * 60 + seconds
                hours, minutes, seconds = parts_f
                return hours * 3600 + minutes * 60 + seconds
        return 0.0

    def _probe(self, file_path: Path) -> Dict[str, Any]:
        cmd = [
            self.binary,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeError(file_path, str(e)) from e
        if result.returncode != 0:
            raise ProbeError(file_path, result.stderr.strip() or f"exit code {result.returncode}")
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(file_path, f"invalid JSON output: {e}") from e

    def probe_duration(self, file_path: Path) -> float:
        """Returns the media duration in seconds.

        Fallback order: format.duration, format tags, first video stream
        duration, its tags, then size/bitrate.
        """
        data = self._probe(file_path)
        fmt = data.get("format", {}) or {}
        streams = data.get("streams", []) or []
        video_stream = next((s for s in streams if s.get("codec_type") == "video"), {})

        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = self._to_float(video_stream.get("duration"))
        if duration <= 0:
            tags = video_stream.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            bit_rate = self._to_float(fmt.get("bit_rate") or video_stream.get("bit_rate"))
            size = self._to_float(fmt.get("size"))
            if bit_rate > 0 and size > 0:
                duration = (size * 8) / bit_rate

        if duration <= 0:
            raise ProbeError(file_path, "duration unavailable")
        return duration

    def read_source_tag(self, file_path: Path) -> Optional[str]:
        """Returns the archived basename recorded in a converted file, if any."""
        data = self._probe(file_path)
        tags = (data.get("format", {}) or {}).get("tags", {}) or {}
        for key, value in tags.items():
            if key.upper() == SOURCE_TAG and value:
                return str(value)
        return None
