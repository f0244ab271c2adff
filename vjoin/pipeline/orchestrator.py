import concurrent.futures
import logging
import shutil
import time
import uuid
from typing import List, NamedTuple, Optional
from vjoin.config.models import AppConfig
from vjoin.domain.errors import VjoinError, ValidationError, PipelineError
from vjoin.domain.events import (
    JobStarted, JobStageChanged, VideoDownloaded, VideoValidated, VideoPrepared,
    CompressionAttemptFinished, JobWarning, JobCompleted, JobFailed,
)
from vjoin.domain.models import (
    CompressionAttempt, InputVideo, JobRequest, JobResult, JobStage, ProcessingJob, can_transition,
)
from vjoin.infrastructure.downloader import HttpDownloader
from vjoin.infrastructure.event_bus import EventBus
from vjoin.infrastructure.ffmpeg import FFmpegAdapter
from vjoin.infrastructure.ffprobe import FFprobeAdapter
from vjoin.infrastructure.logging import JobLogAdapter
from vjoin.infrastructure.object_store import ObjectStore
from vjoin.infrastructure.process import ProcessRegistry
from vjoin.pipeline.audio import AudioPipeline
from vjoin.pipeline.compressor import SizeConstraintCompressor
from vjoin.pipeline.concatenator import VideoConcatenator
from vjoin.pipeline.muxer import Muxer
from vjoin.pipeline.normalizer import Normalizer
from vjoin.pipeline.validator import Validator

MB = 1024 * 1024

class PipelineStages(NamedTuple):
    validator: Validator
    normalizer: Normalizer
    audio: AudioPipeline
    concatenator: VideoConcatenator
    compressor: SizeConstraintCompressor
    muxer: Muxer

class Orchestrator:
    """Runs one concatenation job end to end on this host.

    Each run owns its scratch directory and process registry; nothing is shared
    between jobs except the read-only config and the event bus.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        downloader: HttpDownloader,
        object_store: Optional[ObjectStore] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.downloader = downloader
        self.object_store = object_store
        self.logger = logger or logging.getLogger(__name__)

    def _build_stages(self, registry: ProcessRegistry, log) -> PipelineStages:
        ffprobe = FFprobeAdapter(timeout=self.config.timeouts.probe, registry=registry)
        ffmpeg = FFmpegAdapter(self.config, registry=registry, logger=log)
        return PipelineStages(
            validator=Validator(ffprobe, self.config.general.min_file_bytes, logger=log),
            normalizer=Normalizer(self.config, ffmpeg, logger=log),
            audio=AudioPipeline(self.config, ffmpeg, ffprobe, logger=log),
            concatenator=VideoConcatenator(self.config, ffmpeg, logger=log),
            compressor=SizeConstraintCompressor(self.config, ffmpeg, logger=log),
            muxer=Muxer(self.config, ffmpeg, ffprobe, logger=log),
        )

    def _advance(self, job: ProcessingJob, stage: JobStage, log):
        job.advance(stage)
        log.info(f"Stage -> {stage.value}")
        self.event_bus.publish(JobStageChanged(job_id=job.job_id, stage=stage))

    def _warn(self, job: ProcessingJob, message: str, log):
        job.warnings.append(message)
        log.warning(message)
        self.event_bus.publish(JobWarning(job_id=job.job_id, message=message))

    def _join(self, futures: List[concurrent.futures.Future], registry: ProcessRegistry,
              also_cancel: Optional[List[concurrent.futures.Future]] = None) -> list:
        """Waits for all futures; on the first failure cancels the rest, kills the job's processes and re-raises."""
        done, _ = concurrent.futures.wait(futures, return_when=concurrent.futures.FIRST_EXCEPTION)
        for future in futures:
            if future in done and future.exception() is not None:
                for other in futures + (also_cancel or []):
                    other.cancel()
                registry.close()
                raise future.exception()
        return [f.result() for f in futures]

    # -- stages ----------------------------------------------------------------

    def _download(self, job: ProcessingJob, request: JobRequest, pool, registry, log):
        self._advance(job, JobStage.DOWNLOADING, log)
        for i, url in enumerate(request.urls):
            job.inputs.append(InputVideo(index=i, source_url=url, path=job.scratch_dir / f"video-{i}.mp4"))

        def fetch(video: InputVideo) -> int:
            log.info(f"Downloading {video.label}/{len(job.inputs)}: {video.source_url}")
            size = self.downloader.fetch(video.source_url, video.path)
            self.event_bus.publish(VideoDownloaded(job_id=job.job_id, index=video.index, size_bytes=size))
            return size

        self._join([pool.submit(fetch, v) for v in job.inputs], registry)

    def _validate(self, job: ProcessingJob, stages: PipelineStages, pool, registry, log):
        self._advance(job, JobStage.VALIDATING, log)
        results = self._join([pool.submit(stages.validator.validate, v.path) for v in job.inputs], registry)
        for video, result in zip(job.inputs, results):
            video.validation = result
            summary = (
                f"{result.codec} {result.width}x{result.height} {result.frame_rate}fps"
                if result.is_valid else (result.error or "invalid")
            )
            self.event_bus.publish(VideoValidated(
                job_id=job.job_id, index=video.index, is_valid=result.is_valid, summary=summary,
            ))
        for video in job.inputs:
            if not video.validation.is_valid:
                raise ValidationError(f"Video {video.index + 1} is corrupted or invalid: {video.validation.error}")
        log.info(f"All {len(job.inputs)} videos passed validation")

    def _prepare(self, job: ProcessingJob, stages: PipelineStages, pool, registry, log):
        """Fans out per-video canonicalization and audio extraction; joins the video side."""
        self._advance(job, JobStage.NORMALIZING, log)

        def prepare(video: InputVideo) -> str:
            attempts = job.normalization_attempts[video.index]
            method = stages.normalizer.prepare(
                video, job.scratch_dir / f"normalized-{video.index}.mp4", job.profile, attempts
            )
            self.event_bus.publish(VideoPrepared(job_id=job.job_id, index=video.index, method=method))
            return method

        job.normalization_attempts = {v.index: [] for v in job.inputs}
        video_futures = [pool.submit(prepare, v) for v in job.inputs]
        audio_futures = [
            pool.submit(stages.audio.extract, v, job.scratch_dir / f"audio-{v.index}.m4a") for v in job.inputs
        ]
        methods = self._join(video_futures, registry, also_cancel=audio_futures)
        job.prepare_methods = methods
        job.canonical_outputs = [job.scratch_dir / f"normalized-{v.index}.mp4" for v in job.inputs]
        log.info(f"All {len(job.canonical_outputs)} videos ready for concatenation")
        return audio_futures

    def _fail(self, job: ProcessingJob, error: VjoinError, registry: ProcessRegistry, log):
        job.error_category = error.category
        job.error_message = error.message
        if can_transition(job.stage, JobStage.FAILED):
            job.advance(JobStage.FAILED)
        killed = registry.close()
        if killed:
            log.warning(f"Killed {killed} running engine process(es)")
        log.error(f"Job failed ({error.category}): {error.message}")
        self.event_bus.publish(JobStageChanged(job_id=job.job_id, stage=JobStage.FAILED))
        self.event_bus.publish(JobFailed(job_id=job.job_id, category=error.category, error_message=error.message))

    # -- entry point -------------------------------------------------------------

    def run(self, request: JobRequest) -> JobResult:
        job_id = request.job_id or uuid.uuid4().hex[:12]
        profile = self.config.profile_for(request.aspect)
        scratch = self.config.general.scratch_root / f"project-{job_id}-{int(time.time() * 1000)}"
        job = ProcessingJob(job_id=job_id, profile=profile, scratch_dir=scratch,
                            output_filename=request.output_filename)
        registry = ProcessRegistry()
        log = JobLogAdapter(self.logger, job_id)
        output_path = self.config.general.output_dir / request.output_filename
        delivered = False

        log.info(f"Received job: {len(request.urls)} videos, format {profile.name} ({profile.width}x{profile.height})")
        self.event_bus.publish(JobStarted(job_id=job_id, urls=list(request.urls), profile_name=profile.name))

        # Shut down in finally, after a failure has closed the registry, so stragglers die fast.
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.general.max_workers, thread_name_prefix=f"vjoin-{job_id}"
        )
        try:
            scratch.mkdir(parents=True, exist_ok=False)
            stages = self._build_stages(registry, log)

            self._download(job, request, pool, registry, log)
            self._validate(job, stages, pool, registry, log)
            audio_futures = self._prepare(job, stages, pool, registry, log)

            self._advance(job, JobStage.CONCATENATING_VIDEO, log)
            video_only = stages.concatenator.concatenate(
                job.canonical_outputs, scratch / f"video-only-{request.output_filename}"
            )

            self._advance(job, JobStage.EXTRACTING_AUDIO, log)
            tracks = self._join(audio_futures, registry)
            final_audio = stages.audio.concatenate(tracks, scratch / "final-audio.m4a")

            self._advance(job, JobStage.COMPRESSING, log)

            def on_attempt(attempt: CompressionAttempt):
                job.compression_attempts.append(attempt)
                self.event_bus.publish(CompressionAttemptFinished(job_id=job_id, attempt=attempt))

            report = stages.compressor.compress(video_only, profile.size_ceiling_bytes, on_attempt=on_attempt)
            if not report.within_ceiling:
                self._warn(job, (
                    f"Video (without audio) still exceeds {profile.size_ceiling_bytes / MB:.0f} MB after "
                    f"{len(report.attempts)} attempt(s) ({report.final_size / MB:.2f} MB, {report.stop_reason})"
                ), log)

            self._advance(job, JobStage.MUXING, log)
            muxed = scratch / request.output_filename
            mux_report = stages.muxer.mux(video_only, final_audio, muxed, profile.size_ceiling_bytes)
            for warning in mux_report.warnings:
                self._warn(job, warning, log)

            output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(muxed), str(output_path))
            delivered = True

            public_url = None
            if request.upload and self.object_store is not None:
                self._advance(job, JobStage.UPLOADING, log)
                key = request.storage_key or f"{job_id}/{request.output_filename}"
                log.info(f"Uploading to storage as {key}")
                public_url = self.object_store.publish(output_path, key)

            self._advance(job, JobStage.DONE, log)

        except VjoinError as e:
            self._fail(job, e, registry, log)
            if delivered:
                output_path.unlink(missing_ok=True)
            raise
        except Exception as e:
            error = PipelineError(f"{type(e).__name__}: {e}")
            self._fail(job, error, registry, log)
            if delivered:
                output_path.unlink(missing_ok=True)
            raise error from e
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
            shutil.rmtree(scratch, ignore_errors=True)
            log.info("Cleanup complete")

        size = output_path.stat().st_size
        log.info(f"Job complete: {output_path} ({size / MB:.2f} MB)")
        self.event_bus.publish(JobCompleted(
            job_id=job_id, output_path=str(output_path), size_bytes=size, public_url=public_url,
        ))
        return JobResult(
            job_id=job_id,
            output_path=output_path,
            size_bytes=size,
            within_ceiling=mux_report.within_ceiling,
            warnings=list(job.warnings),
            methods=list(job.prepare_methods),
            compression_attempts=list(job.compression_attempts),
            normalization_attempts=dict(job.normalization_attempts),
            public_url=public_url,
        )
