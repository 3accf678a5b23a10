from typing import Optional


class StorageError(Exception):
    pass

class RetryableError(StorageError):
    """Temporary: network timeout, 429/5xx from GCS, transient IO errors."""
    pass

class PermanentError(StorageError):
    """Won't improve with retry: bad input, missing bucket, auth, conflict."""
    pass

class NotFoundError(PermanentError):
    """The bucket or object does not exist (404)."""
    pass

class ConflictError(PermanentError):
    """The bucket already exists, usually created by a concurrent actor (409)."""
    pass

class ForbiddenError(PermanentError):
    """Credentials lack permission on the bucket (401/403)."""
    pass

class InvalidRequestError(PermanentError):
    """GCS rejected the request as malformed (400 and other 4xx)."""
    pass

class MalformedStateError(PermanentError):
    """A policy decorator produced an unusable desired bucket state."""
    pass

class InvalidBucketPathError(PermanentError, ValueError):
    """A gs:// URI failed validation before any remote call."""
    pass

class RetriesExhaustedError(PermanentError):
    """A transient failure kept recurring after the retry budget ran out."""

    def __init__(self, description: str, attempts: int, cause: Exception):
        self.description = description
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"{description} failed after {attempts} attempt(s): {cause}")


def is_transient(error: Optional[BaseException]) -> bool:
    return isinstance(error, (RetryableError, RetriesExhaustedError))


class UploadError(Exception):
    """Terminal failure of a bucket or upload operation, surfaced to the build log."""

    def __init__(self, bucket: str, operation: str, cause: Optional[Exception] = None, detail: Optional[str] = None):
        self.bucket = bucket
        self.operation = operation
        self.cause = cause
        self.retryable = is_transient(cause)
        message = f"Failed to {operation} '{bucket}'"
        if detail:
            message = f"{message}: {detail}"
        elif cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DownloadError(Exception):
    """Terminal failure of a download, surfaced to the build log."""

    def __init__(self, bucket: str, object_name: str, cause: Optional[Exception] = None):
        self.bucket = bucket
        self.object_name = object_name
        self.cause = cause
        self.retryable = is_transient(cause)
        message = f"Failed to download 'gs://{bucket}/{object_name}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
