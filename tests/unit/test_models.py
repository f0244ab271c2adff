import pytest
from pathlib import Path
from pydantic import ValidationError
from vjoin.domain.models import (
    JobStage, ProcessingJob, TargetProfile, JobRequest, StepOutcome, InvalidTransition, can_transition,
)
from vjoin.domain.errors import (
    VjoinError, DownloadError, UploadError, UploadConflictError, PipelineError,
)

def make_job() -> ProcessingJob:
    profile = TargetProfile(name="9:16", width=1080, height=1920, size_ceiling_bytes=49 * 1024 * 1024)
    return ProcessingJob(job_id="abc", profile=profile, scratch_dir=Path("/tmp/project-abc"),
                         output_filename="final.mp4")

HAPPY_PATH = [
    JobStage.DOWNLOADING,
    JobStage.VALIDATING,
    JobStage.NORMALIZING,
    JobStage.CONCATENATING_VIDEO,
    JobStage.EXTRACTING_AUDIO,
    JobStage.COMPRESSING,
    JobStage.MUXING,
    JobStage.UPLOADING,
    JobStage.DONE,
]

def test_job_walks_happy_path():
    job = make_job()
    for stage in HAPPY_PATH:
        job.advance(stage)
    assert job.stage == JobStage.DONE
    assert job.stage_history == [JobStage.PENDING] + HAPPY_PATH

def test_upload_is_optional():
    assert can_transition(JobStage.MUXING, JobStage.DONE)

def test_skipping_a_stage_is_rejected():
    job = make_job()
    job.advance(JobStage.DOWNLOADING)
    with pytest.raises(InvalidTransition):
        job.advance(JobStage.NORMALIZING)
    assert job.stage == JobStage.DOWNLOADING

def test_failed_reachable_from_any_active_stage():
    for stage in HAPPY_PATH[:-1]:
        assert can_transition(stage, JobStage.FAILED)
    assert can_transition(JobStage.PENDING, JobStage.FAILED)

def test_terminal_stages_are_final():
    job = make_job()
    job.advance(JobStage.FAILED)
    with pytest.raises(InvalidTransition):
        job.advance(JobStage.DOWNLOADING)
    assert not can_transition(JobStage.DONE, JobStage.FAILED)

def test_step_outcome_constructors():
    ok = StepOutcome.ok("fast")
    assert ok.success and ok.method == "fast" and ok.reason is None
    err = StepOutcome.err("boom")
    assert not err.success and err.reason == "boom"

def test_target_profile_is_immutable():
    profile = TargetProfile(name="1:1", width=1080, height=1080, size_ceiling_bytes=1)
    with pytest.raises(ValidationError):
        profile.width = 720

def test_job_request_needs_two_urls():
    with pytest.raises(ValidationError):
        JobRequest(urls=["https://a/1.mp4"])

def test_job_request_output_filename_is_basename():
    request = JobRequest(urls=["a", "b"], output_filename="../../etc/out.mp4")
    assert request.output_filename == "out.mp4"
    with pytest.raises(ValidationError):
        JobRequest(urls=["a", "b"], output_filename="..")

def test_error_categories():
    assert DownloadError("x").category == "download"
    assert PipelineError("x").category == "internal"
    conflict = UploadConflictError("dup")
    assert isinstance(conflict, UploadError)
    assert isinstance(conflict, VjoinError)
    assert conflict.to_dict() == {"category": "upload_conflict", "message": "dup", "retryable": True}
    assert not UploadError("x").retryable
