class VjoinError(Exception):
    """Fatal pipeline error surfaced to the caller as (category, message)."""

    category = "internal"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"category": self.category, "message": self.message, "retryable": self.retryable}

class DownloadError(VjoinError):
    category = "download"

class ValidationError(VjoinError):
    category = "validation"

class NormalizationError(VjoinError):
    category = "normalization"

class AudioError(VjoinError):
    category = "audio"

class ConcatenationError(VjoinError):
    category = "concatenation"

class MuxError(VjoinError):
    category = "mux"

class UploadError(VjoinError):
    category = "upload"

class UploadConflictError(UploadError):
    """The destination key already holds an object; retry with a unique key."""
    category = "upload_conflict"
    retryable = True

class CompressionError(VjoinError):
    category = "compression"

class PipelineError(VjoinError):
    category = "internal"
