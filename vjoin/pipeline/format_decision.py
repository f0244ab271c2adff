from vjoin.domain.models import ValidationResult, TargetProfile

def is_fast_path_eligible(validation: ValidationResult, target: TargetProfile) -> bool:
    """True when the source already matches the canonical profile and can be stream-copied.

    Pure lookup: codec, width and height must equal the target's, and the frame-rate
    expression must be one of the profile's accepted textual forms.
    """
    if not validation.is_valid:
        return False
    return (
        validation.codec == target.codec
        and validation.width == target.width
        and validation.height == target.height
        and validation.frame_rate in target.accepted_frame_rates
    )
