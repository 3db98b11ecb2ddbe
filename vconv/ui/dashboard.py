import logging
import threading
from datetime import datetime
from typing import Optional
from rich.live import Live
from rich.console import Console, Group, RenderableType
from rich.text import Text
from vconv.ui.state import UIState, INFO, INFO2, SUCCESS, WARNING, ERROR, HEADER, PLAIN

logger = logging.getLogger(__name__)

MESSAGE_STYLES = {
    INFO: "blue",
    INFO2: "magenta",
    SUCCESS: "green",
    WARNING: "yellow",
    ERROR: "red",
    HEADER: "bold cyan",
    PLAIN: "",
}

class Dashboard:
    """Console output for a run.

    Activity messages scroll above a live area that holds one status line
    per active conversion and a counters line.
    """

    def __init__(self, state: UIState, console: Optional[Console] = None, refresh_interval: float = 0.5):
        self.state = state
        self.console = console or Console()
        self.refresh_interval = refresh_interval
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()

    def format_elapsed(self, started: Optional[datetime]) -> str:
        if started is None:
            return "--:--"
        seconds = int((datetime.now() - started).total_seconds())
        return f"{seconds // 60:02d}:{seconds % 60:02d}"

    def _render_active_job(self, job, snapshot, started) -> Text:
        line = Text()
        line.append(f"[{job.index}/{self.state.total_jobs}] ", style="dim")
        line.append(job.name, style="bold")
        line.append(f" {self.format_elapsed(started)} ", style="dim")
        if snapshot is None:
            line.append("starting...", style="dim")
        else:
            line.append(snapshot.format_line(), style="cyan")
        return line

    def _render_counters(self) -> Text:
        with self.state._lock:
            done = self.state.done_count
            total = self.state.total_jobs
            failed = self.state.failed_count
            skipped = self.state.skipped_count
            interrupted = self.state.interrupt_requested
        line = Text()
        line.append(f"{done}/{total} done", style="bold")
        if skipped:
            line.append(f" | {skipped} skipped", style="blue")
        if failed:
            line.append(f" | {failed} failed", style="red")
        if interrupted:
            line.append(" | INTERRUPTED", style="bold yellow")
        return line

    def create_display(self) -> RenderableType:
        with self.state._lock:
            if self.state.dry_run or self.state.total_jobs == 0:
                return Text("")
            active = self.state.snapshot_active()
        lines = [self._render_active_job(job, snap, started) for job, snap, started in active]
        lines.append(self._render_counters())
        return Group(*lines)

    def flush_messages(self):
        """Prints queued activity messages above the live area."""
        for level, text in self.state.drain_messages():
            style = MESSAGE_STYLES.get(level, "")
            # Markup off: file names may contain square brackets
            self.console.print(text, style=style or None, markup=False, highlight=False, soft_wrap=True)

    def refresh(self):
        with self._ui_lock:
            self.flush_messages()
            if self._live:
                self._live.update(self.create_display())

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            try:
                self.refresh()
            except Exception:
                # Keep the conversion running even if a frame fails to render
                logger.debug("Dashboard refresh failed", exc_info=True)
            self._stop_refresh.wait(self.refresh_interval)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4, transient=True)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        with self._ui_lock:
            if self._live:
                self._live.stop()
                self._live = None
            # Everything queued after the last frame, including the final tally
            self.flush_messages()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
