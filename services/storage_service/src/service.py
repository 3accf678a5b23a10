import mimetypes
from functools import partial
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from .bucket_path import (
    BucketPath,
    lifecycle_bucket_name,
    replace_macros,
    strip_path_prefix,
    validate_bucket_uri,
)
from .dependencies import build_reconciler
from .exceptions import (
    DownloadError,
    InvalidBucketPathError,
    PermanentError,
    StorageError,
    UploadError,
)
from .lifecycle import always_compliant, expiring_checker, expiring_decorator, identity
from .logging import jlog
from .outcomes import ReconcileResult
from .retry import RetryingExecutor
from .schemas import (
    BuildResult,
    DownloadRequest,
    DownloadResponse,
    LifecycleRequest,
    LifecycleResponse,
    LogUploadRequest,
    UploadRequest,
    UploadResponse,
)
from .storage import BucketClient

PUBLIC_READ = "publicRead"

# Extensions whose guessed type is wrong or missing on some platforms
CONTENT_TYPE_OVERRIDES = {".css": "text/css"}


def detect_content_type(filename: str) -> Optional[str]:
    suffix = PurePosixPath(filename).suffix.lower()
    if suffix in CONTENT_TYPE_OVERRIDES:
        return CONTENT_TYPE_OVERRIDES[suffix]
    content_type, _ = mimetypes.guess_type(filename)
    return content_type


def content_disposition(filename: str) -> str:
    """Content-Disposition header naming the uploaded file."""
    quoted = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'inline; filename="{quoted}"'


def should_upload(result: BuildResult, for_failed_jobs: bool) -> bool:
    """SUCCESS always uploads; FAILURE and UNSTABLE only when asked to."""
    if result == BuildResult.SUCCESS:
        return True
    if result in (BuildResult.FAILURE, BuildResult.UNSTABLE):
        return for_failed_jobs
    return False

# -----------------------
# Lifecycle
# -----------------------

def apply_expiring_lifecycle(
    req: LifecycleRequest,
    client: BucketClient,
    executor: RetryingExecutor,
    correlation_id: Optional[str] = None,
) -> LifecycleResponse:
    uri = replace_macros(req.bucket, req.variables)
    # Rejected before any remote call
    bucket_name = lifecycle_bucket_name(uri)

    jlog(event="lifecycle_start", correlation_id=correlation_id, bucket=bucket_name, ttl=req.ttl)
    result = build_reconciler(client, executor).reconcile(
        bucket_name, expiring_decorator(req.ttl), expiring_checker(req.ttl)
    )
    jlog(
        event="lifecycle_ok",
        correlation_id=correlation_id,
        bucket=bucket_name,
        action=result.action.value,
        reads=result.reads,
        conflicts=result.conflicts,
    )
    rules = list(result.snapshot.lifecycle_rules) if result.snapshot else []
    return LifecycleResponse(bucket=bucket_name, action=result.action.value, lifecycle_rules=rules)

# -----------------------
# Uploads
# -----------------------

def _ensure_bucket(client: BucketClient, executor: RetryingExecutor, bucket_name: str) -> ReconcileResult:
    """Creates the bucket if missing; existing buckets are left as they are."""
    return build_reconciler(client, executor).reconcile(bucket_name, identity, always_compliant)


def _resolve_sources(workspace: Path, files: List[str], bucket_name: str) -> List[Tuple[Path, str]]:
    """Returns (local path, workspace-relative POSIX path) for each listed file."""
    root = workspace.resolve()
    sources: List[Tuple[Path, str]] = []
    for name in files:
        # Absolute names replace the workspace when joined
        local = (workspace / name).resolve()
        if not local.is_relative_to(root):
            raise InvalidBucketPathError(f"'{name}' is outside of the workspace {workspace}")
        if not local.is_file():
            raise UploadError(bucket_name, f"upload {name} to", PermanentError(f"{local} is not a file"))
        sources.append((local, local.relative_to(root).as_posix()))
    return sources


def upload_files(
    req: UploadRequest,
    client: BucketClient,
    executor: RetryingExecutor,
    correlation_id: Optional[str] = None,
) -> UploadResponse:
    if not should_upload(req.result, req.for_failed_jobs):
        jlog(event="upload_skipped", correlation_id=correlation_id, result=req.result.value)
        return UploadResponse(bucket=req.bucket, skipped=True)

    uri = replace_macros(req.bucket, req.variables)
    destination = validate_bucket_uri(uri)
    workspace = Path(replace_macros(req.workspace, req.variables))
    path_prefix = replace_macros(req.path_prefix, req.variables) if req.path_prefix else None
    files = [replace_macros(f, req.variables) for f in req.files]

    # Missing files fail before the bucket is touched
    sources = _resolve_sources(workspace, files, destination.bucket)
    _ensure_bucket(client, executor, destination.bucket)

    acl = PUBLIC_READ if req.shared_publicly else None
    uploaded: List[str] = []
    for local, relative in sources:
        target = destination.child(strip_path_prefix(relative, path_prefix))
        content_type = detect_content_type(local.name)
        jlog(
            event="upload_start",
            correlation_id=correlation_id,
            source=str(local),
            target=target.uri,
            content_type=content_type,
        )
        try:
            executor.execute(
                partial(
                    client.upload_file,
                    target.bucket,
                    target.object,
                    str(local),
                    content_type=content_type,
                    predefined_acl=acl,
                    content_disposition=content_disposition(local.name),
                ),
                f"upload {target.uri}",
            )
        except StorageError as e:
            raise UploadError(destination.bucket, f"upload {relative} to", e) from e
        uploaded.append(target.uri)

    jlog(event="upload_ok", correlation_id=correlation_id, bucket=destination.bucket, objects=len(uploaded))
    return UploadResponse(bucket=destination.bucket, objects=uploaded)


def upload_log(
    req: LogUploadRequest,
    client: BucketClient,
    executor: RetryingExecutor,
    correlation_id: Optional[str] = None,
) -> UploadResponse:
    """Uploads build log text; runs for every build result."""
    destination = validate_bucket_uri(replace_macros(req.bucket, req.variables))
    target = destination.child(replace_macros(req.log_name, req.variables))

    _ensure_bucket(client, executor, destination.bucket)

    acl = PUBLIC_READ if req.shared_publicly else None
    try:
        executor.execute(
            partial(client.upload_text, target.bucket, target.object, req.content, "text/plain", acl),
            f"upload {target.uri}",
        )
    except StorageError as e:
        raise UploadError(destination.bucket, "upload log to", e) from e

    jlog(event="upload_ok", correlation_id=correlation_id, bucket=destination.bucket, objects=1, bytes=len(req.content))
    return UploadResponse(bucket=destination.bucket, objects=[target.uri])

# -----------------------
# Downloads
# -----------------------

def download_object(
    req: DownloadRequest,
    client: BucketClient,
    executor: RetryingExecutor,
    correlation_id: Optional[str] = None,
) -> DownloadResponse:
    uri = replace_macros(req.bucket_uri, req.variables)
    source = BucketPath.parse(uri)
    if source.error or not source.object:
        raise InvalidBucketPathError(f"'{uri}' must name both a bucket and an object")

    local_dir = Path(replace_macros(req.local_directory, req.variables))
    path_prefix = replace_macros(req.path_prefix, req.variables) if req.path_prefix else None
    destination = local_dir / strip_path_prefix(source.object, path_prefix)

    # Object names may contain "..": never write outside local_dir
    if not destination.resolve().is_relative_to(local_dir.resolve()):
        raise InvalidBucketPathError(f"'{uri}' resolves outside of {local_dir}")

    jlog(event="download_start", correlation_id=correlation_id, source=source.uri, target=str(destination))
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DownloadError(source.bucket, source.object, PermanentError(str(e))) from e

    try:
        executor.execute(
            partial(client.download_file, source.bucket, source.object, str(destination)),
            f"download {source.uri}",
        )
    except StorageError as e:
        raise DownloadError(source.bucket, source.object, e) from e

    jlog(event="download_ok", correlation_id=correlation_id, source=source.uri, target=str(destination))
    return DownloadResponse(object_uri=source.uri, local_path=str(destination))
