"""Domain-specific exceptions for the ingest pipeline."""

from __future__ import annotations


class IngestError(Exception):
    """Base class for ingest-related errors."""

    failure_reason = "internal_error"


class UnauthorizedError(IngestError):
    """Raised when no valid identity is attached to the request."""

    failure_reason = "unauthorized"


class ForbiddenError(IngestError):
    """Raised when a staging path is outside the caller's scope."""

    failure_reason = "forbidden"


class InvalidInputError(IngestError):
    """Raised when a request fails validation before any external work."""

    failure_reason = "invalid_input"


class SourceTooLongError(InvalidInputError):
    """Raised when a picked source exceeds the duration ceiling."""

    def __init__(self, duration: float, ceiling: float) -> None:
        super().__init__(f"source is {duration:.2f}s, limit is {ceiling:.0f}s")
        self.duration = duration
        self.ceiling = ceiling


class MetadataTimeoutError(IngestError):
    """Raised when metadata probing does not finish in time."""

    failure_reason = "metadata_timeout"


class UpstreamFetchFailedError(IngestError):
    """Raised when a staging artifact cannot be downloaded."""

    failure_reason = "upstream_fetch_failed"


class TranscodeFailedError(IngestError):
    """Raised when ffmpeg exits with a non-zero status."""

    failure_reason = "transcode_failed"

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class TranscodeTimeoutError(TranscodeFailedError):
    """Raised when ffmpeg is killed after the execution timeout."""

    failure_reason = "transcode_timeout"

    def __init__(self, timeout_seconds: float | None = None, message: str | None = None) -> None:
        if message is None:
            message = (
                f"transcode exceeded {timeout_seconds:.0f}s"
                if timeout_seconds is not None
                else "transcode timed out"
            )
        super().__init__(message, exit_code=None)
        self.timeout_seconds = timeout_seconds


class PublishUploadFailedError(IngestError):
    """Raised when the processed file cannot be stored in the media bucket."""

    failure_reason = "publish_upload_failed"


class CatalogWriteFailedError(IngestError):
    """Raised when the media row cannot be inserted."""

    failure_reason = "catalog_write_failed"


class SignUploadFailedError(IngestError):
    """Raised when the storage backend refuses to sign an upload."""

    failure_reason = "sign_upload_failed"
