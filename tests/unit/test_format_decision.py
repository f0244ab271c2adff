from vjoin.config.models import AppConfig
from vjoin.domain.models import ValidationResult
from vjoin.pipeline.format_decision import is_fast_path_eligible

TARGET = AppConfig().profile_for("9:16")

def probe(**overrides) -> ValidationResult:
    fields = dict(is_valid=True, codec="h264", width=1080, height=1920, frame_rate="30/1", duration=5.0)
    fields.update(overrides)
    return ValidationResult(**fields)

def test_exact_match_is_eligible():
    assert is_fast_path_eligible(probe(), TARGET)
    assert is_fast_path_eligible(probe(frame_rate="30"), TARGET)

def test_any_mismatch_disqualifies():
    assert not is_fast_path_eligible(probe(codec="hevc"), TARGET)
    assert not is_fast_path_eligible(probe(width=1920, height=1080), TARGET)
    assert not is_fast_path_eligible(probe(height=1918), TARGET)

def test_frame_rate_is_compared_textually():
    # 29.97 and 60 are not the canonical rate even though they are "close"
    assert not is_fast_path_eligible(probe(frame_rate="30000/1001"), TARGET)
    assert not is_fast_path_eligible(probe(frame_rate="60/1"), TARGET)
    assert not is_fast_path_eligible(probe(frame_rate="30.0"), TARGET)

def test_double_rate_when_profile_allows():
    config = AppConfig()
    config.profiles["9:16"].accept_double_rate = True
    assert is_fast_path_eligible(probe(frame_rate="60/1"), config.profile_for("9:16"))

def test_invalid_probe_never_eligible():
    assert not is_fast_path_eligible(ValidationResult.failure("broken"), TARGET)

def test_decision_is_pure():
    result = probe()
    before = result.model_dump()
    assert is_fast_path_eligible(result, TARGET) == is_fast_path_eligible(result, TARGET)
    assert result.model_dump() == before
