import logging
import os
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from pydantic import BaseModel, Field
from vjoin.config.models import AppConfig, CompressionConfig
from vjoin.domain.models import CompressionAttempt
from vjoin.infrastructure.ffmpeg import FFmpegAdapter

def choose_crf(attempt: int, ratio: float, previous_crf: Optional[int], config: CompressionConfig) -> int:
    """First attempt scales with how far over the ceiling we are; later attempts step up."""
    if attempt == 1 or previous_crf is None:
        for threshold, crf in config.first_attempt_buckets:
            if ratio > threshold:
                return min(int(crf), config.crf_max)
        return min(config.mild_crf, config.crf_max)
    return min(previous_crf + config.crf_step, config.crf_max)

def bitrate_cap(crf: int, config: CompressionConfig) -> Tuple[str, str]:
    """(maxrate, bufsize); the cap tightens as CRF rises."""
    for min_crf, maxrate, bufsize in config.bitrate_caps:
        if crf >= int(min_crf):
            return str(maxrate), str(bufsize)
    _, maxrate, bufsize = config.bitrate_caps[-1]
    return str(maxrate), str(bufsize)

class CompressionReport(BaseModel):
    original_size: int
    final_size: int
    ceiling: int
    attempts: List[CompressionAttempt] = Field(default_factory=list)
    stop_reason: str = "within_ceiling"

    @property
    def within_ceiling(self) -> bool:
        return self.final_size <= self.ceiling

class SizeConstraintCompressor:
    """Re-encodes a muted video with escalating CRF until it fits under a size ceiling."""

    def __init__(self, config: AppConfig, ffmpeg: FFmpegAdapter, logger: Optional[logging.Logger] = None):
        self.config = config
        self.ffmpeg = ffmpeg
        self.logger = logger or logging.getLogger(__name__)

    def compress(self, path: Path, ceiling: int,
                 on_attempt: Optional[Callable[[CompressionAttempt], None]] = None) -> CompressionReport:
        """Shrinks `path` in place. Ending over the ceiling is reported, never raised."""
        comp = self.config.compression
        original = size = path.stat().st_size
        report = CompressionReport(original_size=original, final_size=size, ceiling=ceiling)
        if size <= ceiling:
            return report

        mb = 1024 * 1024
        self.logger.info(f"Video too large ({size / mb:.2f} MB). Starting iterative compression (video only)")
        start = time.monotonic()
        working = path
        crf = comp.initial_crf
        attempt = 0
        report.stop_reason = "max_attempts"

        while size > ceiling and attempt < comp.max_attempts:
            ratio = size / ceiling
            # clamped at crf_max; a pinned CRF still re-encodes the shrunken working file
            crf = choose_crf(attempt + 1, ratio, crf if attempt else None, comp)
            attempt += 1
            maxrate, bufsize = bitrate_cap(crf, comp)
            self.logger.info(
                f"Attempt {attempt}/{comp.max_attempts}: CRF {crf} "
                f"(current size: {size / mb:.2f} MB, ratio: {ratio:.2f}x)"
            )

            record = CompressionAttempt(attempt=attempt, crf=crf, maxrate=maxrate, bufsize=bufsize, size_before=size)
            candidate = path.with_name(f"compressed_{attempt}_{path.name}")
            cmd = self.ffmpeg.build_compress(working, candidate, crf, maxrate, bufsize)
            outcome = self.ffmpeg.run(cmd, candidate, self.config.timeouts.compress, f"compress-{attempt}")

            if not outcome.success:
                self.logger.error(f"Compression attempt {attempt} failed: {outcome.reason}")
                candidate.unlink(missing_ok=True)
            else:
                new_size = candidate.stat().st_size
                record.size_after = new_size
                if new_size >= size:
                    self.logger.warning(
                        f"Attempt {attempt} did not shrink the video ({new_size / mb:.2f} MB), discarding"
                    )
                    candidate.unlink(missing_ok=True)
                else:
                    record.accepted = True
                    self.logger.info(f"Attempt {attempt} result: {size / mb:.2f} MB -> {new_size / mb:.2f} MB")
                    if working != path:
                        working.unlink(missing_ok=True)
                    working = candidate
                    size = new_size

            report.attempts.append(record)
            if on_attempt is not None:
                on_attempt(record)

        if size <= ceiling:
            report.stop_reason = "within_ceiling"

        if working != path:
            os.replace(working, path)
        report.final_size = path.stat().st_size

        reduction = (1 - report.final_size / original) * 100
        self.logger.info(
            f"Compression finished in {time.monotonic() - start:.2f}s after {attempt} attempt(s): "
            f"{original / mb:.2f} MB -> {report.final_size / mb:.2f} MB ({reduction:.1f}% reduction)"
        )
        return report
