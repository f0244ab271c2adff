import json
from pathlib import Path
from typing import Dict, Any, Optional
from vjoin.infrastructure.process import run_process, ProcessRegistry

def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self, timeout: float = 30, registry: Optional[ProcessRegistry] = None):
        self.timeout = timeout
        self.registry = registry

    def _run_json(self, cmd, file_path: Path) -> Dict[str, Any]:
        result = run_process(cmd, timeout=self.timeout, registry=self.registry)
        if not result.ok:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.describe()}")
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise RuntimeError(f"ffprobe returned invalid JSON for {file_path}: {e}")

    def probe_video(self, file_path: Path) -> Dict[str, Any]:
        """Structural probe of the first video stream, counting decodable packets."""
        cmd = [
            "ffprobe",
            "-v", "error",
            "-analyzeduration", "100M",
            "-probesize", "100M",
            "-select_streams", "v:0",
            "-count_packets",
            "-show_entries", "stream=codec_name,width,height,r_frame_rate,duration,nb_read_packets"
                             ":format=duration",
            "-of", "json",
            str(file_path),
        ]
        data = self._run_json(cmd, file_path)

        streams = data.get("streams") or []
        if not streams:
            raise ValueError(f"No video stream found in {file_path}")
        stream = streams[0]

        duration = _to_float(stream.get("duration"))
        if duration is None:
            duration = _to_float((data.get("format") or {}).get("duration"))

        packets = stream.get("nb_read_packets")
        return {
            "codec": stream.get("codec_name"),
            "width": int(stream.get("width") or 0),
            "height": int(stream.get("height") or 0),
            "frame_rate": stream.get("r_frame_rate"),
            "duration": duration,
            "packets": int(packets) if packets is not None and str(packets).isdigit() else None,
        }

    def get_stream_info(self, file_path: Path) -> Dict[str, Any]:
        """Container duration plus the codec types of every stream."""
        cmd = [
            "ffprobe",
            "-v", "error",
            "-show_entries", "format=duration:stream=codec_type,duration",
            "-of", "json",
            str(file_path),
        ]
        data = self._run_json(cmd, file_path)
        streams = data.get("streams") or []
        return {
            "duration": _to_float((data.get("format") or {}).get("duration")),
            "codec_types": [s.get("codec_type") for s in streams],
            "stream_durations": {
                s.get("codec_type"): _to_float(s.get("duration"))
                for s in reversed(streams)
            },
        }

    def has_audio(self, file_path: Path) -> bool:
        return "audio" in self.get_stream_info(file_path)["codec_types"]

    def get_duration(self, file_path: Path) -> Optional[float]:
        return self.get_stream_info(file_path)["duration"]
