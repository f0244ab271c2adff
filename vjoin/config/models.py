import re
from pathlib import Path
from typing import List, Dict, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from vjoin.domain.models import TargetProfile

MIB = 1024 * 1024

class GeneralConfig(BaseModel):
    scratch_root: Path = Path("/tmp")
    output_dir: Path = Path("output")
    log_dir: Path = Path("logs")
    max_workers: int = Field(default=4, gt=0)
    min_file_bytes: int = Field(default=1000, ge=1)
    default_aspect: str = "9:16"
    debug: bool = False

class TimeoutConfig(BaseModel):
    """Hard per-invocation limits (seconds) for engine subprocesses."""
    probe: float = Field(default=30, gt=0)
    fast_copy: float = Field(default=60, gt=0)
    normalize: float = Field(default=900, gt=0)
    audio_extract: float = Field(default=120, gt=0)
    audio_concat: float = Field(default=180, gt=0)
    video_concat: float = Field(default=600, gt=0)
    compress: float = Field(default=900, gt=0)
    mux: float = Field(default=180, gt=0)

class NormalizationTier(BaseModel):
    name: str
    preset: str
    crf: int = Field(ge=0, le=51)
    extra_filters: List[str] = Field(default_factory=list)

def _default_tiers() -> List[NormalizationTier]:
    return [
        NormalizationTier(name="fast", preset="fast", crf=23),
        NormalizationTier(name="robust", preset="medium", crf=25, extra_filters=["format=yuv420p"]),
        NormalizationTier(name="forced", preset="slow", crf=28,
                          extra_filters=["format=yuv420p", "setpts=PTS-STARTPTS"]),
    ]

class NormalizationConfig(BaseModel):
    tiers: List[NormalizationTier] = Field(default_factory=_default_tiers)
    maxrate: str = "1.5M"
    bufsize: str = "3M"
    video_track_timescale: int = Field(default=15360, gt=0)

    @field_validator('tiers')
    @classmethod
    def validate_tiers(cls, v: List[NormalizationTier]) -> List[NormalizationTier]:
        if len(v) != 3:
            raise ValueError(f"Normalization cascade needs exactly 3 tiers, got {len(v)}.")
        for prev, cur in zip(v, v[1:]):
            if cur.crf < prev.crf:
                raise ValueError(f"Tier '{cur.name}' must not use a lower CRF than '{prev.name}'.")
        return v

class CompressionConfig(BaseModel):
    max_attempts: int = Field(default=4, gt=0)
    initial_crf: int = Field(default=23, ge=0, le=51)
    crf_max: int = Field(default=35, ge=0, le=51)
    crf_step: int = Field(default=3, gt=0)
    preset: str = "medium"
    # (ratio threshold, crf) checked top-down for the first attempt
    first_attempt_buckets: List[List[float]] = Field(
        default_factory=lambda: [[3.0, 32], [2.0, 30], [1.5, 28]]
    )
    mild_crf: int = Field(default=25, ge=0, le=51)
    # (min crf, maxrate, bufsize) checked top-down
    bitrate_caps: List[List] = Field(
        default_factory=lambda: [[33, "1.5M", "3M"], [30, "2M", "4M"], [0, "3M", "6M"]]
    )
    corrective_crf: int = Field(default=30, ge=0, le=51)
    corrective_maxrate: str = "2M"
    corrective_bufsize: str = "4M"

    @model_validator(mode='after')
    def check_crf_range(self) -> 'CompressionConfig':
        if self.initial_crf > self.crf_max:
            raise ValueError(f"initial_crf ({self.initial_crf}) exceeds crf_max ({self.crf_max}).")
        return self

class AudioConfig(BaseModel):
    codec: str = "aac"
    bitrate: str = "128k"
    sample_rate: int = Field(default=48000, gt=0)
    channels: int = Field(default=2, gt=0)
    sync_tolerance_seconds: float = Field(default=0.1, ge=0.0)
    align_to_video: bool = True
    reencode_on_mux: bool = False

class DownloadConfig(BaseModel):
    timeout_seconds: float = Field(default=600, gt=0)
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    chunk_size: int = Field(default=1048576, gt=0)
    large_file_warning_bytes: int = Field(default=200 * MIB)

class StorageConfig(BaseModel):
    url: Optional[str] = None
    key: Optional[str] = None
    bucket: str = "videos"
    timeout_seconds: float = Field(default=300, gt=0)

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.key)

class SweeperConfig(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(default=900, gt=0)
    max_age_seconds: float = Field(default=3600, gt=0)
    max_engine_processes: int = Field(default=5, ge=0)
    prefixes: List[str] = Field(default_factory=lambda: ["project-", "compress-"])

class SingleCompressConfig(BaseModel):
    """Defaults for `vjoin compress`: one video re-encoded with caller-chosen settings."""
    crf: int = Field(default=23, ge=0, le=51)
    preset: str = "medium"
    max_bitrate: str = "5M"
    codec: str = "libx264"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    output_format: str = "mp4"

    @field_validator('max_bitrate')
    @classmethod
    def validate_bitrate(cls, v: str) -> str:
        if not re.fullmatch(r"\d+(\.\d+)?[kKmM]?", v):
            raise ValueError(f"Invalid bitrate '{v}', expected e.g. 5M or 800k.")
        return v

class ProfileConfig(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    fps: int = Field(default=30, gt=0)
    codec: str = "h264"
    size_ceiling_bytes: int = Field(default=49 * MIB, gt=0)
    accept_double_rate: bool = False

    @field_validator('width', 'height')
    @classmethod
    def validate_even(cls, v: int) -> int:
        if v % 2:
            raise ValueError(f"Dimension {v} must be even for yuv420p output.")
        return v

def _default_profiles() -> Dict[str, ProfileConfig]:
    return {
        "9:16": ProfileConfig(width=1080, height=1920),
        "1:1": ProfileConfig(width=1080, height=1080),
        "16:9": ProfileConfig(width=1920, height=1080),
    }

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sweeper: SweeperConfig = Field(default_factory=SweeperConfig)
    single_compress: SingleCompressConfig = Field(default_factory=SingleCompressConfig)
    profiles: Dict[str, ProfileConfig] = Field(default_factory=_default_profiles)

    @model_validator(mode='after')
    def check_default_aspect(self) -> 'AppConfig':
        if self.general.default_aspect not in self.profiles:
            raise ValueError(f"Default aspect '{self.general.default_aspect}' has no profile.")
        return self

    def profile_for(self, aspect: Optional[str]) -> TargetProfile:
        """Resolves an aspect to a TargetProfile; unknown aspects fall back to the default."""
        name = aspect if aspect in self.profiles else self.general.default_aspect
        p = self.profiles[name]
        rates = [f"{p.fps}/1", str(p.fps)]
        if p.accept_double_rate:
            rates.append(f"{p.fps * 2}/1")
        return TargetProfile(
            name=name,
            width=p.width,
            height=p.height,
            fps=p.fps,
            codec=p.codec,
            size_ceiling_bytes=p.size_ceiling_bytes,
            accepted_frame_rates=tuple(rates),
        )
