import logging
import shutil
import time
from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from vjoin.config.models import AppConfig, SingleCompressConfig
from vjoin.domain.errors import CompressionError, PipelineError, VjoinError
from vjoin.infrastructure.downloader import HttpDownloader
from vjoin.infrastructure.ffmpeg import FFmpegAdapter
from vjoin.infrastructure.logging import JobLogAdapter
from vjoin.infrastructure.object_store import ObjectStore
from vjoin.infrastructure.process import ProcessRegistry

MB = 1024 * 1024

class SingleCompressResult(BaseModel):
    compress_id: str
    output_path: Path
    original_size: int
    compressed_size: int
    public_url: Optional[str] = None
    storage_key: Optional[str] = None

    @property
    def reduction_percent(self) -> float:
        if not self.original_size:
            return 0.0
        return round((1 - self.compressed_size / self.original_size) * 100, 1)

class SingleVideoCompressor:
    """Downloads one video and re-encodes it, audio included, with explicit settings.

    Unlike the job pipeline there is no size ceiling and no retry: one encode either
    succeeds or the run fails. Uploads never overwrite an existing object.
    """

    def __init__(self, config: AppConfig, downloader: HttpDownloader,
                 object_store: Optional[ObjectStore] = None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.downloader = downloader
        self.object_store = object_store
        self.logger = logger or logging.getLogger(__name__)

    def _build_ffmpeg(self, registry: ProcessRegistry, log) -> FFmpegAdapter:
        return FFmpegAdapter(self.config, registry=registry, logger=log)

    def run(self, url: str, settings: Optional[SingleCompressConfig] = None,
            output_filename: Optional[str] = None, storage_key: Optional[str] = None) -> SingleCompressResult:
        settings = settings or self.config.single_compress
        compress_id = f"compress-{int(time.time() * 1000)}"
        scratch = self.config.general.scratch_root / compress_id
        output_name = Path(output_filename).name if output_filename else f"{compress_id}.{settings.output_format}"
        output_path = self.config.general.output_dir / output_name
        registry = ProcessRegistry()
        log = JobLogAdapter(self.logger, compress_id)
        delivered = False

        log.info(f"Compression request: CRF={settings.crf}, preset={settings.preset}, maxrate={settings.max_bitrate}")
        try:
            scratch.mkdir(parents=True, exist_ok=False)
            source = scratch / "input.mp4"
            original_size = self.downloader.fetch(url, source)

            encoded = scratch / f"compressed.{settings.output_format}"
            ffmpeg = self._build_ffmpeg(registry, log)
            start = time.monotonic()
            outcome = ffmpeg.run(
                ffmpeg.build_single_compress(source, encoded, settings),
                encoded, self.config.timeouts.compress, "compress",
            )
            if not outcome.success:
                raise CompressionError(f"Compression failed: {outcome.reason}")
            compressed_size = encoded.stat().st_size

            output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(encoded), str(output_path))
            delivered = True

            result = SingleCompressResult(
                compress_id=compress_id,
                output_path=output_path,
                original_size=original_size,
                compressed_size=compressed_size,
            )
            log.info(
                f"Compressed: {original_size / MB:.2f} MB -> {compressed_size / MB:.2f} MB "
                f"in {time.monotonic() - start:.2f}s ({result.reduction_percent}% reduction)"
            )

            if storage_key and self.object_store is not None:
                log.info(f"Uploading to storage as {storage_key}")
                self.object_store.upload(output_path, storage_key, upsert=False)
                result.storage_key = storage_key
                result.public_url = self.object_store.public_url(storage_key)

        except VjoinError as e:
            registry.close()
            log.error(f"Compression failed ({e.category}): {e.message}")
            if delivered:
                output_path.unlink(missing_ok=True)
            raise
        except Exception as e:
            registry.close()
            error = PipelineError(f"{type(e).__name__}: {e}")
            log.error(f"Compression failed ({error.category}): {error.message}")
            if delivered:
                output_path.unlink(missing_ok=True)
            raise error from e
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        return result
