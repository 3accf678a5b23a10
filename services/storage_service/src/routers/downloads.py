from anyio import to_thread
from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..dependencies import get_bucket_client, get_executor
from ..exceptions import DownloadError, InvalidBucketPathError
from ..logging import jlog
from ..retry import RetryingExecutor
from ..schemas import DownloadRequest, DownloadResponse
from ..service import download_object
from ..storage import BucketClient

router = APIRouter()

@router.post(
    "/downloads",
    response_model=DownloadResponse,
    summary="Download one object to a local directory",
    status_code=status.HTTP_200_OK,
)
async def download(
    payload: DownloadRequest,
    client: BucketClient = Depends(get_bucket_client),
    executor: RetryingExecutor = Depends(get_executor),
    x_correlation_id: str | None = Header(default=None),
) -> DownloadResponse:
    try:
        return await to_thread.run_sync(download_object, payload, client, executor, x_correlation_id)
    except InvalidBucketPathError as e:
        jlog(event="download_failed", retryable=False, error=str(e), correlation_id=x_correlation_id)
        raise HTTPException(status_code=400, detail=str(e))
    except DownloadError as e:
        jlog(
            event="download_failed",
            severity="ERROR",
            retryable=e.retryable,
            bucket=e.bucket,
            object=e.object_name,
            error=str(e),
            correlation_id=x_correlation_id,
        )
        raise HTTPException(status_code=503 if e.retryable else 422, detail=str(e))
