import logging
from pathlib import Path
from typing import Optional
from vjoin.domain.models import ValidationResult
from vjoin.infrastructure.ffprobe import FFprobeAdapter

class Validator:
    """Structural gate run on every downloaded file before any transcoding."""

    def __init__(self, ffprobe: FFprobeAdapter, min_file_bytes: int = 1000,
                 logger: Optional[logging.Logger] = None):
        self.ffprobe = ffprobe
        self.min_file_bytes = min_file_bytes
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, path: Path) -> ValidationResult:
        """Never raises; a failure result carries a human-readable reason."""
        path = Path(path)
        if not path.exists():
            return ValidationResult.failure(f"File not found: {path.name}")
        size = path.stat().st_size
        if size < self.min_file_bytes:
            return ValidationResult.failure(f"File too small ({size} bytes)")

        try:
            info = self.ffprobe.probe_video(path)
        except ValueError:
            return ValidationResult.failure("No video stream found")
        except RuntimeError as e:
            return ValidationResult.failure(f"Probe failed: {e}")

        if not info["codec"]:
            return ValidationResult.failure("Codec not identified - file may be corrupted")
        if not info["width"] or not info["height"]:
            return ValidationResult.failure("Invalid dimensions - file may be corrupted")
        if info["packets"] == 0:
            return ValidationResult.failure("No readable packets - file is corrupted")

        result = ValidationResult.success(
            codec=info["codec"],
            width=info["width"],
            height=info["height"],
            frame_rate=info["frame_rate"],
            duration=info["duration"],
        )
        self.logger.info(f"{path.name} valid: {result.width}x{result.height}, codec: {result.codec}")
        return result
