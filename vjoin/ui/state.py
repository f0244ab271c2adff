import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional
from vjoin.domain.models import CompressionAttempt, JobStage

class VideoRow:
    """Display state of one input video."""

    def __init__(self, index: int, url: str):
        self.index = index
        self.url = url
        self.size_bytes: Optional[int] = None
        self.valid: Optional[bool] = None
        self.summary = ""
        self.method: Optional[str] = None

class UIState:
    """Thread-safe state manager for the live job view."""

    def __init__(self):
        self._lock = threading.RLock()

        self.job_id: Optional[str] = None
        self.profile_name: Optional[str] = None
        self.stage: JobStage = JobStage.PENDING
        self.started_at: Optional[datetime] = None
        self.stage_started_at: Optional[datetime] = None
        self.stage_history: List[JobStage] = []

        self.videos: Dict[int, VideoRow] = {}
        self.compression_attempts: List[CompressionAttempt] = []
        self.warnings = deque(maxlen=5)

        # Outcome
        self.output_path: Optional[str] = None
        self.output_size_bytes = 0
        self.public_url: Optional[str] = None
        self.error_category: Optional[str] = None
        self.error_message: Optional[str] = None

        self.sweeps_run = 0
        self.dirs_swept = 0
        self._last_action = ""

    @property
    def finished(self) -> bool:
        with self._lock:
            return self.stage in (JobStage.DONE, JobStage.FAILED)

    @property
    def elapsed_seconds(self) -> float:
        with self._lock:
            if self.started_at is None:
                return 0.0
            return (datetime.now() - self.started_at).total_seconds()

    def start_job(self, job_id: str, urls: List[str], profile_name: str):
        with self._lock:
            self.job_id = job_id
            self.profile_name = profile_name
            self.stage = JobStage.PENDING
            self.started_at = self.stage_started_at = datetime.now()
            self.stage_history = [JobStage.PENDING]
            self.videos = {i: VideoRow(i, url) for i, url in enumerate(urls)}
            self.compression_attempts = []
            self.warnings.clear()
            self.output_path = self.public_url = None
            self.error_category = self.error_message = None
            self.output_size_bytes = 0

    def set_stage(self, stage: JobStage):
        with self._lock:
            self.stage = stage
            self.stage_started_at = datetime.now()
            self.stage_history.append(stage)

    def video(self, index: int) -> VideoRow:
        with self._lock:
            if index not in self.videos:
                self.videos[index] = VideoRow(index, "")
            return self.videos[index]

    def set_last_action(self, message: str):
        with self._lock:
            self._last_action = message

    def get_last_action(self) -> str:
        with self._lock:
            return self._last_action
