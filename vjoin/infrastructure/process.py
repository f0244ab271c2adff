import logging
import subprocess
import threading
import time
from typing import List, Optional, Sequence
from pydantic import BaseModel

logger = logging.getLogger(__name__)

class ExitResult(BaseModel):
    code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.code == 0

    def describe(self, tail: int = 600) -> str:
        """Short human-readable failure description with the stderr tail."""
        if self.timed_out:
            head = f"timed out after {self.elapsed:.0f}s"
        else:
            head = f"exited with code {self.code}"
        err = self.stderr.strip()
        if err:
            return f"{head}: {err[-tail:]}"
        return head

class Process:
    """One engine invocation: start(args) -> handle, wait(timeout) -> ExitResult, kill()."""

    def __init__(self, args: Sequence[str]):
        self.args = [str(a) for a in args]
        self._popen: Optional[subprocess.Popen] = None
        self._started_at = 0.0

    @property
    def running(self) -> bool:
        return self._popen is not None and self._popen.poll() is None

    def start(self) -> "Process":
        self._started_at = time.monotonic()
        self._popen = subprocess.Popen(
            self.args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        return self

    def wait(self, timeout: Optional[float] = None) -> ExitResult:
        if self._popen is None:
            raise RuntimeError("Process.wait() called before start()")
        try:
            stdout, stderr = self._popen.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process timed out after {timeout}s, killing: {self.args[0]}")
            self.kill()
            stdout, stderr = self._popen.communicate()
            return ExitResult(
                code=self._popen.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
                elapsed=time.monotonic() - self._started_at,
            )
        return ExitResult(
            code=self._popen.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            elapsed=time.monotonic() - self._started_at,
        )

    def kill(self):
        if self._popen is not None and self._popen.poll() is None:
            self._popen.kill()

class ProcessRegistry:
    """Tracks live processes spawned on behalf of one job so they can be killed on failure.

    Once closed, newly registered processes are killed immediately and run_process
    refuses to start new ones.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._live: List[Process] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, proc: Process):
        with self._lock:
            if not self._closed:
                self._live.append(proc)
                return
        proc.kill()

    def discard(self, proc: Process):
        with self._lock:
            if proc in self._live:
                self._live.remove(proc)

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._live)

    def kill_all(self) -> int:
        """Best-effort kill of every process still registered. Returns how many were signalled."""
        with self._lock:
            procs = list(self._live)
            self._live.clear()
        killed = 0
        for proc in procs:
            try:
                if proc.running:
                    proc.kill()
                    killed += 1
            except OSError as e:
                logger.warning(f"Failed to kill {proc.args[0]}: {e}")
        return killed

    def close(self) -> int:
        with self._lock:
            self._closed = True
        return self.kill_all()

def run_process(args: Sequence[str], timeout: Optional[float] = None,
                registry: Optional[ProcessRegistry] = None) -> ExitResult:
    """Starts a process, blocks until exit or timeout, and never raises for engine failures."""
    proc = Process(args)
    if registry is not None and registry.closed:
        return ExitResult(code=None, stderr="job aborted, process not started")
    try:
        proc.start()
    except OSError as e:
        return ExitResult(code=127, stderr=f"failed to start {proc.args[0]}: {e}")
    if registry is not None:
        registry.register(proc)
    try:
        return proc.wait(timeout=timeout)
    finally:
        if registry is not None:
            registry.discard(proc)
