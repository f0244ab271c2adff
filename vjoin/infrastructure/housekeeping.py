import logging
import shutil
import threading
import time
from pathlib import Path
from typing import Optional
from vjoin.config.models import SweeperConfig
from vjoin.domain.events import SweepFinished
from vjoin.infrastructure.event_bus import EventBus
from vjoin.infrastructure.process import run_process

class HousekeepingService:
    """Removes stale job scratch directories and reaps orphaned ffmpeg processes.

    Runs independently of jobs; the age window is the only guard against touching
    an in-flight job's directory.
    """

    def __init__(self, scratch_root: Path, config: SweeperConfig, event_bus: Optional[EventBus] = None):
        self.scratch_root = Path(scratch_root)
        self.config = config
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def cleanup_stale_dirs(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        if not self.scratch_root.exists():
            return 0
        removed = 0
        for entry in self.scratch_root.iterdir():
            if not any(entry.name.startswith(p) for p in self.config.prefixes):
                continue
            try:
                age = now - entry.stat().st_mtime
            except FileNotFoundError:
                continue
            if age <= self.config.max_age_seconds:
                continue
            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
            removed += 1
            self.logger.info(f"Removed old temp dir: {entry.name}")
        return removed

    def count_engine_processes(self) -> int:
        result = run_process(["pgrep", "-c", "ffmpeg"], timeout=10)
        # pgrep exits 1 when nothing matches
        if result.code not in (0, 1):
            self.logger.debug(f"pgrep unavailable: {result.describe()}")
            return 0
        try:
            return int(result.stdout.strip() or 0)
        except ValueError:
            return 0

    def kill_orphans(self) -> bool:
        count = self.count_engine_processes()
        if count <= self.config.max_engine_processes:
            return False
        self.logger.warning(f"Found {count} ffmpeg processes, killing job-owned ones...")
        pattern = f"ffmpeg.*{self.config.prefixes[0]}" if self.config.prefixes else "ffmpeg"
        run_process(["pkill", "-9", "-f", pattern], timeout=10)
        return True

    def sweep_once(self) -> int:
        removed = self.cleanup_stale_dirs()
        killed = self.kill_orphans()
        self.logger.info(f"Cleanup complete: {removed} old directories removed")
        if self.event_bus:
            self.event_bus.publish(SweepFinished(removed_dirs=removed, killed_processes=killed))
        return removed

    def _loop(self):
        while not self._stop_event.wait(self.config.interval_seconds):
            try:
                self.sweep_once()
            except Exception as e:
                self.logger.error(f"Cleanup error: {e}")

    def start(self):
        if self._thread is not None or not self.config.enabled:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="vjoin-sweeper")
        self._thread.start()
        self.logger.info(f"Periodic cleanup enabled (every {self.config.interval_seconds:.0f}s)")

    def stop(self):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=1.0)
            self._thread = None
