import logging
import re
from pathlib import Path
from typing import List, Optional
from vjoin.config.models import AppConfig, NormalizationTier, SingleCompressConfig
from vjoin.domain.models import StepOutcome, TargetProfile
from vjoin.infrastructure.process import run_process, ProcessRegistry

BASE = ["ffmpeg", "-hide_banner", "-loglevel", "error"]

def scale_pad_filter(target: TargetProfile, extra_filters: Optional[List[str]] = None) -> str:
    """Fit the source inside the target box without cropping, letterboxing the rest in black."""
    w, h = target.width, target.height
    chain = [
        f"scale={w}:{h}:force_original_aspect_ratio=decrease",
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black",
        "setsar=1",
    ]
    chain.extend(extra_filters or [])
    return ",".join(chain)

def write_concat_list(paths: List[Path], list_file: Path) -> Path:
    """Writes a concat-demuxer list, one quoted absolute path per line, in the given order."""
    lines = []
    for p in paths:
        escaped = str(Path(p).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    list_file.write_text("\n".join(lines) + "\n")
    return list_file

def double_rate(rate: str) -> str:
    """Bufsize for a bitrate cap: twice the rate, same unit ("5M" -> "10M", "1.5M" -> "3M")."""
    match = re.fullmatch(r"(\d+(?:\.\d+)?)([kKmM]?)", rate)
    if match is None:
        raise ValueError(f"Invalid bitrate: {rate}")
    value = float(match.group(1)) * 2
    return f"{value:g}{match.group(2)}"

class FFmpegAdapter:
    """Builds ffmpeg argument lists and runs them with output verification."""

    def __init__(self, config: AppConfig, registry: Optional[ProcessRegistry] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)

    # -- command builders --------------------------------------------------

    def build_fast_copy(self, src: Path, dst: Path) -> List[str]:
        return BASE + [
            "-i", str(src),
            "-map", "0:v:0",
            "-c", "copy",
            "-an",
            "-fflags", "+genpts",
            "-avoid_negative_ts", "make_zero",
            "-video_track_timescale", str(self.config.normalization.video_track_timescale),
            "-movflags", "+faststart",
            "-y", str(dst),
        ]

    def build_normalize(self, src: Path, dst: Path, target: TargetProfile, tier: NormalizationTier) -> List[str]:
        norm = self.config.normalization
        return BASE + [
            "-err_detect", "ignore_err",
            "-fflags", "+genpts",
            "-analyzeduration", "100M",
            "-probesize", "100M",
            "-i", str(src),
            "-map", "0:v:0",
            "-vf", scale_pad_filter(target, tier.extra_filters),
            "-r", str(target.fps),
            "-c:v", "libx264",
            "-preset", tier.preset,
            "-crf", str(tier.crf),
            "-maxrate", norm.maxrate,
            "-bufsize", norm.bufsize,
            "-an",
            "-fps_mode", "cfr",
            "-avoid_negative_ts", "make_zero",
            "-video_track_timescale", str(norm.video_track_timescale),
            "-movflags", "+faststart",
            "-max_muxing_queue_size", "2048",
            "-y", str(dst),
        ]

    def _audio_encode_args(self) -> List[str]:
        audio = self.config.audio
        return [
            "-c:a", audio.codec,
            "-b:a", audio.bitrate,
            "-ar", str(audio.sample_rate),
            "-ac", str(audio.channels),
        ]

    def build_audio_extract(self, src: Path, dst: Path, align_duration: Optional[float] = None) -> List[str]:
        """Re-encode the first audio stream to the canonical format.

        With align_duration the track is padded with silence or trimmed to exactly that length.
        """
        cmd = BASE + ["-i", str(src), "-map", "0:a:0", "-vn"]
        cmd += self._audio_encode_args()
        if align_duration is not None:
            cmd += ["-af", "apad", "-t", f"{align_duration:.3f}"]
        cmd += ["-y", str(dst)]
        return cmd

    def build_silence(self, dst: Path, duration: float) -> List[str]:
        audio = self.config.audio
        layout = "stereo" if audio.channels == 2 else "mono"
        cmd = BASE + [
            "-f", "lavfi",
            "-i", f"anullsrc=channel_layout={layout}:sample_rate={audio.sample_rate}",
            "-t", f"{duration:.3f}",
        ]
        cmd += self._audio_encode_args()
        cmd += ["-y", str(dst)]
        return cmd

    def build_concat(self, list_file: Path, dst: Path, audio_only: bool = False) -> List[str]:
        cmd = BASE + ["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy"]
        if audio_only:
            cmd += ["-vn"]
        else:
            cmd += ["-an", "-movflags", "+faststart"]
        cmd += ["-y", str(dst)]
        return cmd

    def build_compress(self, src: Path, dst: Path, crf: int, maxrate: str, bufsize: str) -> List[str]:
        return BASE + [
            "-i", str(src),
            "-c:v", "libx264",
            "-preset", self.config.compression.preset,
            "-crf", str(crf),
            "-maxrate", maxrate,
            "-bufsize", bufsize,
            "-an",
            "-movflags", "+faststart",
            "-y", str(dst),
        ]

    def build_mux(self, video: Path, audio: Path, dst: Path) -> List[str]:
        cmd = BASE + [
            "-i", str(video),
            "-i", str(audio),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
        ]
        if self.config.audio.reencode_on_mux:
            cmd += self._audio_encode_args()
        else:
            cmd += ["-c:a", "copy"]
        cmd += ["-shortest", "-movflags", "+faststart", "-y", str(dst)]
        return cmd

    def build_corrective(self, src: Path, dst: Path) -> List[str]:
        comp = self.config.compression
        return BASE + [
            "-i", str(src),
            "-map", "0:v:0",
            "-map", "0:a:0?",
            "-c:v", "libx264",
            "-preset", comp.preset,
            "-crf", str(comp.corrective_crf),
            "-maxrate", comp.corrective_maxrate,
            "-bufsize", comp.corrective_bufsize,
            "-c:a", "copy",
            "-movflags", "+faststart",
            "-y", str(dst),
        ]

    def build_single_compress(self, src: Path, dst: Path, settings: SingleCompressConfig) -> List[str]:
        """Re-encode video and audio together with caller-chosen quality settings."""
        return BASE + [
            "-i", str(src),
            "-c:v", settings.codec,
            "-preset", settings.preset,
            "-crf", str(settings.crf),
            "-maxrate", settings.max_bitrate,
            "-bufsize", double_rate(settings.max_bitrate),
            "-c:a", settings.audio_codec,
            "-b:a", settings.audio_bitrate,
            "-ar", str(self.config.audio.sample_rate),
            "-ac", str(self.config.audio.channels),
            "-fps_mode", "cfr",
            "-fflags", "+genpts",
            "-avoid_negative_ts", "make_zero",
            "-movflags", "+faststart",
            "-y", str(dst),
        ]

    # -- execution ---------------------------------------------------------

    def run(self, cmd: List[str], output: Path, timeout: float, label: str,
            min_bytes: Optional[int] = None) -> StepOutcome:
        """Runs one invocation. Success is exit code 0 and an output above the minimum size."""
        if self.config.general.debug:
            self.logger.debug(f"FFMPEG_START {label}: {' '.join(cmd)}")

        result = run_process(cmd, timeout=timeout, registry=self.registry)
        if not result.ok:
            reason = f"{label} {result.describe()}"
            self.logger.error(f"FFMPEG_FAIL {reason}")
            return StepOutcome.err(reason)

        if not output.exists():
            return StepOutcome.err(f"{label} produced no output file")
        size = output.stat().st_size
        if min_bytes is None:
            min_bytes = self.config.general.min_file_bytes
        if size < min_bytes:
            return StepOutcome.err(f"{label} output too small ({size} bytes)")

        if self.config.general.debug:
            self.logger.debug(f"FFMPEG_END {label}: {size} bytes in {result.elapsed:.2f}s")
        return StepOutcome.ok(label)
