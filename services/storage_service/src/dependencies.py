"""FastAPI dependency wiring for the GCS client and retry policy."""

from typing import Optional

from .config import settings
from .reconcile import BucketReconciler
from .retry import RetryingExecutor
from .storage import BucketClient, GcsBucketClient

_bucket_client: Optional[BucketClient] = None


def get_bucket_client() -> BucketClient:
    """Returns the shared GCS-backed client (the underlying storage.Client is created on first use)."""
    global _bucket_client
    if _bucket_client is None:
        _bucket_client = GcsBucketClient()
    return _bucket_client


def get_executor() -> RetryingExecutor:
    return RetryingExecutor.from_settings(settings)


def build_reconciler(client: BucketClient, executor: RetryingExecutor) -> BucketReconciler:
    return BucketReconciler(
        client,
        executor,
        max_conflict_cycles=settings.max_conflict_cycles,
        budget_s=settings.reconcile_budget_s,
    )
