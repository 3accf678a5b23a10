from anyio import to_thread
from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..dependencies import get_bucket_client, get_executor
from ..exceptions import InvalidBucketPathError, UploadError
from ..logging import jlog
from ..retry import RetryingExecutor
from ..schemas import LogUploadRequest, UploadRequest, UploadResponse
from ..service import upload_files, upload_log
from ..storage import BucketClient

router = APIRouter()


def _to_http(e: Exception, correlation_id: str | None) -> HTTPException:
    if isinstance(e, UploadError):
        jlog(
            event="upload_failed",
            severity="ERROR",
            retryable=e.retryable,
            bucket=e.bucket,
            error=str(e),
            correlation_id=correlation_id,
        )
        return HTTPException(status_code=503 if e.retryable else 422, detail=str(e))
    jlog(event="upload_failed", retryable=False, error=str(e), correlation_id=correlation_id)
    return HTTPException(status_code=400, detail=str(e))


@router.post(
    "/uploads",
    response_model=UploadResponse,
    summary="Upload workspace files to a bucket",
    status_code=status.HTTP_200_OK,
)
async def upload(
    payload: UploadRequest,
    client: BucketClient = Depends(get_bucket_client),
    executor: RetryingExecutor = Depends(get_executor),
    x_correlation_id: str | None = Header(default=None),
) -> UploadResponse:
    try:
        return await to_thread.run_sync(upload_files, payload, client, executor, x_correlation_id)
    except (InvalidBucketPathError, UploadError) as e:
        raise _to_http(e, x_correlation_id)


@router.post(
    "/uploads/log",
    response_model=UploadResponse,
    summary="Upload build log text to a bucket",
    status_code=status.HTTP_200_OK,
)
async def upload_build_log(
    payload: LogUploadRequest,
    client: BucketClient = Depends(get_bucket_client),
    executor: RetryingExecutor = Depends(get_executor),
    x_correlation_id: str | None = Header(default=None),
) -> UploadResponse:
    try:
        return await to_thread.run_sync(upload_log, payload, client, executor, x_correlation_id)
    except (InvalidBucketPathError, UploadError) as e:
        raise _to_http(e, x_correlation_id)
