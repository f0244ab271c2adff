from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator

class JobStage(str, Enum):
    PENDING = "PENDING"
    DOWNLOADING = "DOWNLOADING"
    VALIDATING = "VALIDATING"
    NORMALIZING = "NORMALIZING"
    CONCATENATING_VIDEO = "CONCATENATING_VIDEO"
    EXTRACTING_AUDIO = "EXTRACTING_AUDIO"
    COMPRESSING = "COMPRESSING"
    MUXING = "MUXING"
    UPLOADING = "UPLOADING"
    DONE = "DONE"
    FAILED = "FAILED"

TERMINAL_STAGES = frozenset({JobStage.DONE, JobStage.FAILED})

# FAILED is reachable from any non-terminal stage and is added in can_transition().
TRANSITIONS: Dict[JobStage, frozenset] = {
    JobStage.PENDING: frozenset({JobStage.DOWNLOADING}),
    JobStage.DOWNLOADING: frozenset({JobStage.VALIDATING}),
    JobStage.VALIDATING: frozenset({JobStage.NORMALIZING}),
    JobStage.NORMALIZING: frozenset({JobStage.CONCATENATING_VIDEO}),
    JobStage.CONCATENATING_VIDEO: frozenset({JobStage.EXTRACTING_AUDIO}),
    JobStage.EXTRACTING_AUDIO: frozenset({JobStage.COMPRESSING}),
    JobStage.COMPRESSING: frozenset({JobStage.MUXING}),
    JobStage.MUXING: frozenset({JobStage.UPLOADING, JobStage.DONE}),
    JobStage.UPLOADING: frozenset({JobStage.DONE}),
    JobStage.DONE: frozenset(),
    JobStage.FAILED: frozenset(),
}

def can_transition(current: JobStage, target: JobStage) -> bool:
    if current in TERMINAL_STAGES:
        return False
    if target == JobStage.FAILED:
        return True
    return target in TRANSITIONS[current]

class InvalidTransition(RuntimeError):
    pass

class StepOutcome(BaseModel):
    """Tagged result of an engine step: ok(method) or err(reason)."""
    success: bool
    method: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, method: str) -> "StepOutcome":
        return cls(success=True, method=method)

    @classmethod
    def err(cls, reason: str) -> "StepOutcome":
        return cls(success=False, reason=reason)

class ValidationResult(BaseModel):
    is_valid: bool
    codec: Optional[str] = None
    width: int = 0
    height: int = 0
    frame_rate: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, codec: str, width: int, height: int, frame_rate: Optional[str],
                duration: Optional[float]) -> "ValidationResult":
        return cls(is_valid=True, codec=codec, width=width, height=height,
                   frame_rate=frame_rate, duration=duration)

    @classmethod
    def failure(cls, reason: str) -> "ValidationResult":
        return cls(is_valid=False, error=reason)

class TargetProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    width: int
    height: int
    fps: int = 30
    codec: str = "h264"
    size_ceiling_bytes: int
    accepted_frame_rates: Tuple[str, ...] = ("30/1", "30")

class InputVideo(BaseModel):
    index: int
    source_url: str
    path: Path
    validation: Optional[ValidationResult] = None
    has_audio: Optional[bool] = None

    @property
    def label(self) -> str:
        return f"video {self.index + 1}"

class NormalizationAttempt(BaseModel):
    tier: str
    preset: str
    crf: int
    extra_filters: List[str] = Field(default_factory=list)
    outcome: Optional[StepOutcome] = None

class CompressionAttempt(BaseModel):
    attempt: int
    crf: int
    maxrate: str
    bufsize: str
    size_before: int
    size_after: Optional[int] = None
    accepted: bool = False

class ProcessingJob(BaseModel):
    job_id: str
    inputs: List[InputVideo] = Field(default_factory=list)
    profile: TargetProfile
    scratch_dir: Path
    output_filename: str
    stage: JobStage = JobStage.PENDING
    stage_history: List[JobStage] = Field(default_factory=lambda: [JobStage.PENDING])
    canonical_outputs: List[Optional[Path]] = Field(default_factory=list)
    prepare_methods: List[Optional[str]] = Field(default_factory=list)
    normalization_attempts: Dict[int, List[NormalizationAttempt]] = Field(default_factory=dict)
    compression_attempts: List[CompressionAttempt] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error_category: Optional[str] = None
    error_message: Optional[str] = None

    def advance(self, stage: JobStage):
        if not can_transition(self.stage, stage):
            raise InvalidTransition(f"Job {self.job_id}: illegal transition {self.stage.value} -> {stage.value}")
        self.stage = stage
        self.stage_history.append(stage)

class JobResult(BaseModel):
    job_id: str
    output_path: Path
    size_bytes: int
    within_ceiling: bool
    warnings: List[str] = Field(default_factory=list)
    methods: List[str] = Field(default_factory=list)
    compression_attempts: List[CompressionAttempt] = Field(default_factory=list)
    normalization_attempts: Dict[int, List[NormalizationAttempt]] = Field(default_factory=dict)
    public_url: Optional[str] = None

class JobRequest(BaseModel):
    urls: List[str] = Field(min_length=2)
    aspect: Optional[str] = None
    output_filename: str = "final.mp4"
    storage_key: Optional[str] = None
    upload: bool = True
    job_id: Optional[str] = None

    @field_validator('output_filename')
    @classmethod
    def validate_filename(cls, v: str) -> str:
        name = Path(v).name
        if not name or name in {".", ".."}:
            raise ValueError(f"Invalid output filename: {v!r}")
        return name
