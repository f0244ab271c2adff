from vjoin.infrastructure.event_bus import EventBus
from vjoin.ui.state import UIState
from vjoin.domain.events import (
    JobStarted, JobStageChanged, VideoDownloaded, VideoValidated, VideoPrepared,
    CompressionAttemptFinished, JobWarning, JobCompleted, JobFailed, SweepFinished,
)

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobStageChanged, self.on_stage_changed)
        self.bus.subscribe(VideoDownloaded, self.on_video_downloaded)
        self.bus.subscribe(VideoValidated, self.on_video_validated)
        self.bus.subscribe(VideoPrepared, self.on_video_prepared)
        self.bus.subscribe(CompressionAttemptFinished, self.on_compression_attempt)
        self.bus.subscribe(JobWarning, self.on_warning)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(SweepFinished, self.on_sweep_finished)

    def on_job_started(self, event: JobStarted):
        self.state.start_job(event.job_id, event.urls, event.profile_name)

    def on_stage_changed(self, event: JobStageChanged):
        self.state.set_stage(event.stage)

    def on_video_downloaded(self, event: VideoDownloaded):
        with self.state._lock:
            self.state.video(event.index).size_bytes = event.size_bytes

    def on_video_validated(self, event: VideoValidated):
        with self.state._lock:
            row = self.state.video(event.index)
            row.valid = event.is_valid
            row.summary = event.summary

    def on_video_prepared(self, event: VideoPrepared):
        with self.state._lock:
            self.state.video(event.index).method = event.method

    def on_compression_attempt(self, event: CompressionAttemptFinished):
        with self.state._lock:
            self.state.compression_attempts.append(event.attempt)

    def on_warning(self, event: JobWarning):
        with self.state._lock:
            self.state.warnings.appendleft(event.message)
        self.state.set_last_action(event.message)

    def on_job_completed(self, event: JobCompleted):
        with self.state._lock:
            self.state.output_path = event.output_path
            self.state.output_size_bytes = event.size_bytes
            self.state.public_url = event.public_url

    def on_job_failed(self, event: JobFailed):
        with self.state._lock:
            self.state.error_category = event.category
            self.state.error_message = event.error_message

    def on_sweep_finished(self, event: SweepFinished):
        with self.state._lock:
            self.state.sweeps_run += 1
            self.state.dirs_swept += event.removed_dirs
        if event.killed_processes:
            self.state.set_last_action("Sweeper killed orphaned ffmpeg processes")
