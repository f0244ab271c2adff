import pytest
from unittest.mock import MagicMock, patch
from vjoin.config.models import SingleCompressConfig
from vjoin.domain.errors import CompressionError, DownloadError, UploadConflictError
from vjoin.pipeline.single_compress import SingleVideoCompressor

URL = "https://cdn.example.com/long.mp4"

def make_downloader(write_bytes, size=100_000):
    downloader = MagicMock()

    def fetch(url, dest):
        write_bytes(dest, size)
        return size
    downloader.fetch.side_effect = fetch
    return downloader

def run_compress(app_config, engine_writes, downloader, sizes, store=None, **kwargs):
    ffmpeg = MagicMock()
    ffmpeg.run.side_effect = engine_writes(sizes)
    compressor = SingleVideoCompressor(app_config, downloader, object_store=store)
    with patch.object(compressor, "_build_ffmpeg", return_value=ffmpeg):
        return compressor.run(URL, **kwargs), ffmpeg

def test_compresses_into_output_dir(app_config, engine_writes, write_bytes):
    settings = SingleCompressConfig(crf=30, preset="fast", max_bitrate="2M")
    result, ffmpeg = run_compress(
        app_config, engine_writes, make_downloader(write_bytes), {"compress": 40_000},
        settings=settings, output_filename="small.mp4",
    )
    assert result.output_path == app_config.general.output_dir / "small.mp4"
    assert result.output_path.stat().st_size == 40_000
    assert (result.original_size, result.compressed_size) == (100_000, 40_000)
    assert result.reduction_percent == 60.0
    assert result.compress_id.startswith("compress-")
    assert ffmpeg.build_single_compress.call_args[0][2] is settings
    assert result.public_url is None
    assert list(app_config.general.scratch_root.iterdir()) == []

def test_default_settings_and_output_name(app_config, engine_writes, write_bytes):
    result, ffmpeg = run_compress(app_config, engine_writes, make_downloader(write_bytes), {"*": 5000})
    assert ffmpeg.build_single_compress.call_args[0][2] == app_config.single_compress
    assert result.output_path.name == f"{result.compress_id}.mp4"

def test_scratch_dir_uses_compress_prefix(app_config, engine_writes, write_bytes):
    seen = []
    downloader = make_downloader(write_bytes)
    fetch = downloader.fetch.side_effect

    def record(url, dest):
        seen.append(dest.parent.name)
        return fetch(url, dest)
    downloader.fetch.side_effect = record
    run_compress(app_config, engine_writes, downloader, {"*": 5000})
    assert seen[0].startswith("compress-")
    assert any(seen[0].startswith(p) for p in app_config.sweeper.prefixes)

def test_failed_encode_raises_and_cleans_up(app_config, engine_writes, write_bytes):
    with pytest.raises(CompressionError, match="Compression failed"):
        run_compress(app_config, engine_writes, make_downloader(write_bytes), {"compress": None})
    assert list(app_config.general.scratch_root.iterdir()) == []
    assert not app_config.general.output_dir.exists() or list(app_config.general.output_dir.iterdir()) == []

def test_download_failure_propagates(app_config, engine_writes):
    downloader = MagicMock()
    downloader.fetch.side_effect = DownloadError("Failed to download: 403 Forbidden")
    with pytest.raises(DownloadError):
        run_compress(app_config, engine_writes, downloader, {"*": 5000})
    assert list(app_config.general.scratch_root.iterdir()) == []

def test_upload_never_overwrites(app_config, engine_writes, write_bytes):
    store = MagicMock()
    store.public_url.return_value = "https://store/public/clips/a.mp4"
    result, _ = run_compress(
        app_config, engine_writes, make_downloader(write_bytes), {"*": 5000},
        store=store, storage_key="clips/a.mp4",
    )
    store.upload.assert_called_once_with(result.output_path, "clips/a.mp4", upsert=False)
    assert not store.delete.called
    assert result.public_url == "https://store/public/clips/a.mp4"
    assert result.storage_key == "clips/a.mp4"

def test_no_upload_without_key(app_config, engine_writes, write_bytes):
    store = MagicMock()
    run_compress(app_config, engine_writes, make_downloader(write_bytes), {"*": 5000}, store=store)
    assert not store.upload.called

def test_upload_conflict_removes_delivered_file(app_config, engine_writes, write_bytes):
    store = MagicMock()
    store.upload.side_effect = UploadConflictError("Upload failed: 409 - Duplicate object at clips/a.mp4")
    with pytest.raises(UploadConflictError):
        run_compress(
            app_config, engine_writes, make_downloader(write_bytes), {"*": 5000},
            store=store, storage_key="clips/a.mp4", output_filename="a.mp4",
        )
    assert not (app_config.general.output_dir / "a.mp4").exists()
