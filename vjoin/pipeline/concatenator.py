import logging
import time
from pathlib import Path
from typing import List, Optional
from vjoin.config.models import AppConfig
from vjoin.domain.errors import ConcatenationError
from vjoin.infrastructure.ffmpeg import FFmpegAdapter, write_concat_list

class VideoConcatenator:
    """Joins canonical video-only segments in input order with a container-level copy."""

    def __init__(self, config: AppConfig, ffmpeg: FFmpegAdapter, logger: Optional[logging.Logger] = None):
        self.config = config
        self.ffmpeg = ffmpeg
        self.logger = logger or logging.getLogger(__name__)

    def concatenate(self, segments: List[Optional[Path]], dst: Path) -> Path:
        missing = [i + 1 for i, s in enumerate(segments) if s is None or not Path(s).exists()]
        if missing:
            raise ConcatenationError(f"Canonical output missing for video(s) {missing}")

        list_file = write_concat_list(segments, dst.with_name("concat.txt"))
        self.logger.info(f"Concatenating {len(segments)} normalized videos (no audio)")

        start = time.monotonic()
        cmd = self.ffmpeg.build_concat(list_file, dst)
        outcome = self.ffmpeg.run(cmd, dst, self.config.timeouts.video_concat, "video-concat")
        if not outcome.success:
            raise ConcatenationError(f"Concatenation failed: {outcome.reason}")

        size_mb = dst.stat().st_size / 1024 / 1024
        self.logger.info(f"Video concatenation complete in {time.monotonic() - start:.2f}s ({size_mb:.2f} MB)")
        return dst
