"""Error taxonomy for the ingestion pipeline.

Every domain error carries an ``ErrorType`` so the scheduler can decide
whether a job-level failure is worth another attempt:

- PERMANENT: deterministic input problems (bad format, oversized image).
  Retrying the same bytes produces the same failure.
- TRANSIENT: storage/network hiccups (upload or catalog write failures).
"""

from enum import Enum


class ErrorType(str, Enum):
    """Error classification for retry logic."""

    PERMANENT = "permanent"
    TRANSIENT = "transient"


class IngestError(Exception):
    """Base class for all ingestion errors."""

    error_type: ErrorType = ErrorType.PERMANENT
    code: str = "INGEST_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# --- Per-file validation errors (permanent) ---


class UnsupportedFormat(IngestError):
    code = "UNSUPPORTED_FORMAT"


class FileTooLarge(IngestError):
    code = "FILE_TOO_LARGE"


class ImageTooLarge(IngestError):
    code = "IMAGE_TOO_LARGE"


class CorruptImage(IngestError):
    code = "CORRUPT_IMAGE"


class EncodeTimeout(IngestError):
    """A variant encode exceeded its time budget (pathological input)."""

    code = "ENCODE_TIMEOUT"


# --- Storage errors (transient) ---


class UploadFailure(IngestError):
    error_type = ErrorType.TRANSIENT
    code = "UPLOAD_FAILURE"


class CatalogWriteFailure(IngestError):
    error_type = ErrorType.TRANSIENT
    code = "CATALOG_WRITE_FAILURE"


# --- Queue / scheduler errors ---


class BackpressureRejected(IngestError):
    """Queue is at its maximum depth."""

    error_type = ErrorType.TRANSIENT
    code = "BACKPRESSURE_REJECTED"


class SchedulerClosed(IngestError):
    code = "SCHEDULER_CLOSED"


class JobCancelled(IngestError):
    code = "JOB_CANCELLED"


class AllFilesFailed(IngestError):
    """Raised when a job is configured to fail if no file succeeded."""

    code = "ALL_FILES_FAILED"
    outcome = None  # JobOutcome listing every per-file failure


def is_retryable(error: BaseException) -> bool:
    """Return True if a job-level failure may succeed on another attempt.

    Domain errors answer from their classification; anything outside the
    taxonomy (programming errors aside, usually I/O) is treated as transient.
    """
    if isinstance(error, IngestError):
        return error.error_type == ErrorType.TRANSIENT
    return True


def describe_error(error: BaseException) -> str:
    """Short human-readable description used in per-file failure entries."""
    if isinstance(error, IngestError):
        return str(error)
    return f"{type(error).__name__}: {error}"


def error_type_of(error: BaseException) -> ErrorType:
    if isinstance(error, IngestError):
        return error.error_type
    return ErrorType.TRANSIENT
