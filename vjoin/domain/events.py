from typing import Optional, List
from pydantic import BaseModel
from .models import JobStage, CompressionAttempt

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class JobEvent(Event):
    job_id: str

class JobStarted(JobEvent):
    urls: List[str]
    profile_name: str

class JobStageChanged(JobEvent):
    stage: JobStage

class VideoDownloaded(JobEvent):
    index: int
    size_bytes: int

class VideoValidated(JobEvent):
    index: int
    is_valid: bool
    summary: str

class VideoPrepared(JobEvent):
    index: int
    method: str

class CompressionAttemptFinished(JobEvent):
    attempt: CompressionAttempt

class JobWarning(JobEvent):
    message: str

class JobCompleted(JobEvent):
    output_path: str
    size_bytes: int
    public_url: Optional[str] = None

class JobFailed(JobEvent):
    category: str
    error_message: str

class SweepFinished(Event):
    removed_dirs: int
    killed_processes: bool = False
