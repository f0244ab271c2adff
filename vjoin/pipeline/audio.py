import logging
from pathlib import Path
from typing import List, Optional
from vjoin.config.models import AppConfig
from vjoin.domain.errors import AudioError
from vjoin.domain.models import InputVideo
from vjoin.infrastructure.ffmpeg import FFmpegAdapter, write_concat_list
from vjoin.infrastructure.ffprobe import FFprobeAdapter

# Silent AAC compresses to a few bytes per frame, so audio outputs use a smaller floor.
AUDIO_MIN_BYTES = 64

def needs_alignment(audio_duration: Optional[float], video_duration: Optional[float], tolerance: float) -> bool:
    """True when the audio track drifts from its video by more than the sync tolerance."""
    if audio_duration is None or video_duration is None:
        return False
    return abs(audio_duration - video_duration) > tolerance

class AudioPipeline:
    """Builds one continuous canonical audio track, independently of the video path."""

    def __init__(self, config: AppConfig, ffmpeg: FFmpegAdapter, ffprobe: FFprobeAdapter,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.logger = logger or logging.getLogger(__name__)

    def _video_duration(self, video: InputVideo) -> Optional[float]:
        if video.validation is not None and video.validation.duration:
            return video.validation.duration
        return None

    def extract(self, video: InputVideo, dst: Path) -> Path:
        timeout = self.config.timeouts.audio_extract
        duration = self._video_duration(video)

        try:
            has_audio = self.ffprobe.has_audio(video.path)
        except RuntimeError as e:
            raise AudioError(f"Could not inspect audio of {video.label}: {e}") from e
        video.has_audio = has_audio

        if not has_audio:
            if duration is None:
                raise AudioError(f"{video.label} has no audio stream and no known duration")
            self.logger.info(f"{video.label} has no audio, generating {duration:.2f}s of silence")
            outcome = self.ffmpeg.run(self.ffmpeg.build_silence(dst, duration), dst, timeout, "silence",
                                   min_bytes=AUDIO_MIN_BYTES)
            if not outcome.success:
                raise AudioError(f"Failed to generate silence for {video.label}: {outcome.reason}")
            return dst

        outcome = self.ffmpeg.run(self.ffmpeg.build_audio_extract(video.path, dst), dst, timeout, "audio-extract",
                                   min_bytes=AUDIO_MIN_BYTES)
        if not outcome.success:
            raise AudioError(f"Failed to extract audio from {video.label}: {outcome.reason}")

        if self.config.audio.align_to_video and duration is not None:
            try:
                audio_duration = self.ffprobe.get_duration(dst)
            except RuntimeError as e:
                raise AudioError(f"Could not measure extracted audio of {video.label}: {e}") from e
            if needs_alignment(audio_duration, duration, self.config.audio.sync_tolerance_seconds):
                self.logger.info(
                    f"{video.label} audio drift {audio_duration - duration:+.3f}s exceeds tolerance, "
                    f"aligning to {duration:.3f}s"
                )
                cmd = self.ffmpeg.build_audio_extract(video.path, dst, align_duration=duration)
                outcome = self.ffmpeg.run(cmd, dst, timeout, "audio-align",
                                       min_bytes=AUDIO_MIN_BYTES)
                if not outcome.success:
                    raise AudioError(f"Failed to align audio of {video.label}: {outcome.reason}")

        self.logger.info(f"Audio of {video.label} extracted ({self.config.audio.codec} {self.config.audio.sample_rate}Hz)")
        return dst

    def concatenate(self, tracks: List[Path], dst: Path) -> Path:
        """Joins canonical tracks in order with a stream copy; all share codec and format."""
        list_file = write_concat_list(tracks, dst.with_name("audio-concat.txt"))
        cmd = self.ffmpeg.build_concat(list_file, dst, audio_only=True)
        outcome = self.ffmpeg.run(cmd, dst, self.config.timeouts.audio_concat, "audio-concat",
                                   min_bytes=AUDIO_MIN_BYTES)
        if not outcome.success:
            raise AudioError(f"Failed to concatenate audio tracks: {outcome.reason}")
        self.logger.info(f"Audio tracks concatenated ({dst.stat().st_size / 1024 / 1024:.2f} MB)")
        return dst
