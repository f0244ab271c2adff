import pytest
from unittest.mock import MagicMock
from vjoin.config.models import AppConfig
from vjoin.domain.errors import ConcatenationError
from vjoin.pipeline.concatenator import VideoConcatenator

def make_concatenator(engine_writes, sizes, calls=None):
    ffmpeg = MagicMock()
    ffmpeg.run.side_effect = engine_writes(sizes, calls)
    return VideoConcatenator(AppConfig(), ffmpeg)

def test_segments_listed_in_input_order(tmp_path, engine_writes, write_bytes):
    segments = [write_bytes(tmp_path / f"normalized-{i}.mp4", 3000) for i in range(3)]
    concatenator = make_concatenator(engine_writes, {"video-concat": 9000})
    out = concatenator.concatenate(segments, tmp_path / "video-only-final.mp4")
    assert out.stat().st_size == 9000
    listed = (tmp_path / "concat.txt").read_text().splitlines()
    assert listed == [f"file '{s.resolve()}'" for s in segments]
    list_file = concatenator.ffmpeg.build_concat.call_args[0][0]
    assert list_file == tmp_path / "concat.txt"

def test_missing_segment_is_rejected(tmp_path, engine_writes, write_bytes):
    segments = [write_bytes(tmp_path / "normalized-0.mp4", 3000), None, tmp_path / "normalized-2.mp4"]
    concatenator = make_concatenator(engine_writes, {"*": 9000})
    with pytest.raises(ConcatenationError, match=r"\[2, 3\]"):
        concatenator.concatenate(segments, tmp_path / "out.mp4")
    assert not concatenator.ffmpeg.run.called

def test_engine_failure_raises(tmp_path, engine_writes, write_bytes):
    segments = [write_bytes(tmp_path / f"normalized-{i}.mp4", 3000) for i in range(2)]
    concatenator = make_concatenator(engine_writes, {"video-concat": None})
    with pytest.raises(ConcatenationError, match="Concatenation failed"):
        concatenator.concatenate(segments, tmp_path / "out.mp4")
