import logging
import os
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field
from vjoin.config.models import AppConfig
from vjoin.domain.errors import MuxError
from vjoin.infrastructure.ffmpeg import FFmpegAdapter
from vjoin.infrastructure.ffprobe import FFprobeAdapter

class MuxReport(BaseModel):
    size_bytes: int
    ceiling: int
    corrected: bool = False
    av_drift_seconds: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)

    @property
    def within_ceiling(self) -> bool:
        return self.size_bytes <= self.ceiling

class Muxer:
    """Combines the video-only stream with the concatenated audio into the deliverable."""

    def __init__(self, config: AppConfig, ffmpeg: FFmpegAdapter, ffprobe: FFprobeAdapter,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.logger = logger or logging.getLogger(__name__)

    def _measure_drift(self, path: Path) -> Optional[float]:
        try:
            durations = self.ffprobe.get_stream_info(path)["stream_durations"]
        except RuntimeError as e:
            self.logger.warning(f"Could not probe stream durations of {path.name}: {e}")
            return None
        video, audio = durations.get("video"), durations.get("audio")
        if video is None or audio is None:
            return None
        return abs(video - audio)

    def mux(self, video: Path, audio: Path, dst: Path, ceiling: int) -> MuxReport:
        """Raises MuxError if either the mux or its single corrective pass fails."""
        mb = 1024 * 1024
        cmd = self.ffmpeg.build_mux(video, audio, dst)
        outcome = self.ffmpeg.run(cmd, dst, self.config.timeouts.mux, "mux")
        if not outcome.success:
            raise MuxError(f"Failed to add audio to final video: {outcome.reason}")

        report = MuxReport(size_bytes=dst.stat().st_size, ceiling=ceiling)
        self.logger.info(f"Final video with audio: {report.size_bytes / mb:.2f} MB")

        if not report.within_ceiling:
            self.logger.warning(
                f"Muxed file ({report.size_bytes / mb:.2f} MB) exceeds ceiling ({ceiling / mb:.2f} MB), "
                f"running one corrective pass at CRF {self.config.compression.corrective_crf}"
            )
            corrected = dst.with_name(f"corrected_{dst.name}")
            cmd = self.ffmpeg.build_corrective(dst, corrected)
            outcome = self.ffmpeg.run(cmd, corrected, self.config.timeouts.compress, "corrective")
            if not outcome.success:
                corrected.unlink(missing_ok=True)
                raise MuxError(f"Corrective re-encode failed: {outcome.reason}")
            os.replace(corrected, dst)
            report.corrected = True
            report.size_bytes = dst.stat().st_size
            if not report.within_ceiling:
                report.warnings.append(
                    f"Final video is {report.size_bytes / mb:.2f} MB after corrective pass, "
                    f"above the {ceiling / mb:.2f} MB ceiling"
                )

        report.av_drift_seconds = self._measure_drift(dst)
        tolerance = self.config.audio.sync_tolerance_seconds
        if report.av_drift_seconds is not None and report.av_drift_seconds > tolerance:
            report.warnings.append(
                f"Audio/video duration drift {report.av_drift_seconds:.3f}s exceeds tolerance {tolerance:.3f}s"
            )
        for w in report.warnings:
            self.logger.warning(w)
        return report
