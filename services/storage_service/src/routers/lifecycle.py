from anyio import to_thread
from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..dependencies import get_bucket_client, get_executor
from ..exceptions import InvalidBucketPathError, UploadError
from ..logging import jlog
from ..retry import RetryingExecutor
from ..schemas import LifecycleRequest, LifecycleResponse
from ..service import apply_expiring_lifecycle
from ..storage import BucketClient

router = APIRouter()

@router.post(
    "/buckets/lifecycle",
    response_model=LifecycleResponse,
    summary="Ensure a bucket deletes objects after a number of days",
    status_code=status.HTTP_200_OK,
)
async def expiring_lifecycle(
    payload: LifecycleRequest,
    client: BucketClient = Depends(get_bucket_client),
    executor: RetryingExecutor = Depends(get_executor),
    x_correlation_id: str | None = Header(default=None),
) -> LifecycleResponse:
    try:
        # Offload to worker thread so we don't block event loop
        return await to_thread.run_sync(
            apply_expiring_lifecycle, payload, client, executor, x_correlation_id
        )
    except InvalidBucketPathError as e:
        jlog(event="lifecycle_failed", retryable=False, error=str(e), correlation_id=x_correlation_id)
        raise HTTPException(status_code=400, detail=str(e))
    except UploadError as e:
        jlog(
            event="lifecycle_failed",
            severity="ERROR",
            retryable=e.retryable,
            bucket=e.bucket,
            error=str(e),
            correlation_id=x_correlation_id,
        )
        raise HTTPException(status_code=503 if e.retryable else 422, detail=str(e))
