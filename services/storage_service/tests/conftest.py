from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from services.storage_service.src.exceptions import ConflictError, NotFoundError
from services.storage_service.src.retry import RetryingExecutor
from services.storage_service.src.schemas import BucketSnapshot, LifecycleRule
from services.storage_service.src.storage import BucketClient


class FakeBucketClient(BucketClient):
    """In-memory GCS stand-in that records every remote call.

    fail(op, *errors) queues errors raised by the next calls of op before the
    in-memory behaviour applies.
    """

    def __init__(self, buckets: Optional[Dict[str, BucketSnapshot]] = None):
        self.buckets: Dict[str, BucketSnapshot] = dict(buckets or {})
        self.objects: Dict[Tuple[str, str], str] = {}
        self.uploads: List[dict] = []
        self.calls: List[Tuple[str, str]] = []
        self._script: Dict[str, List[Exception]] = defaultdict(list)

    def fail(self, op: str, *errors: Exception) -> None:
        self._script[op].extend(errors)

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    @property
    def ops(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _record(self, op: str, target: str) -> None:
        self.calls.append((op, target))
        if self._script[op]:
            raise self._script[op].pop(0)

    def get(self, name):
        self._record("get", name)
        if name not in self.buckets:
            raise NotFoundError(f"get bucket {name}: not found")
        return self.buckets[name]

    def insert(self, desired):
        self._record("insert", desired.name)
        if desired.name in self.buckets:
            raise ConflictError(f"create bucket {desired.name}: already exists")
        self.buckets[desired.name] = desired
        return desired

    def update(self, desired):
        self._record("update", desired.name)
        if desired.name not in self.buckets:
            raise NotFoundError(f"update bucket {desired.name}: not found")
        self.buckets[desired.name] = desired
        return desired

    def delete(self, name, force=False):
        self._record("delete", name)
        if self.buckets.pop(name, None) is None:
            raise NotFoundError(f"delete bucket {name}: not found")

    def upload_file(
        self, bucket_name, object_name, file_path, content_type=None, predefined_acl=None, content_disposition=None
    ):
        self._record("upload_file", f"{bucket_name}/{object_name}")
        self.objects[(bucket_name, object_name)] = Path(file_path).read_text()
        self.uploads.append({
            "bucket": bucket_name,
            "object": object_name,
            "content_type": content_type,
            "acl": predefined_acl,
            "content_disposition": content_disposition,
        })

    def upload_text(self, bucket_name, object_name, text, content_type="text/plain", predefined_acl=None):
        self._record("upload_text", f"{bucket_name}/{object_name}")
        self.objects[(bucket_name, object_name)] = text
        self.uploads.append({
            "bucket": bucket_name,
            "object": object_name,
            "content_type": content_type,
            "acl": predefined_acl,
        })

    def download_file(self, bucket_name, object_name, destination):
        self._record("download_file", f"{bucket_name}/{object_name}")
        if (bucket_name, object_name) not in self.objects:
            raise NotFoundError(f"download gs://{bucket_name}/{object_name}: not found")
        Path(destination).write_text(self.objects[(bucket_name, object_name)])


def expiring_snapshot(name: str, age: int) -> BucketSnapshot:
    return BucketSnapshot(
        name=name,
        lifecycle_rules=(LifecycleRule(action_type="Delete", condition={"age": age}),),
    )


@pytest.fixture
def fake_client():
    return FakeBucketClient()


@pytest.fixture
def executor():
    return RetryingExecutor(retries=5)


@pytest.fixture
def make_expiring():
    return expiring_snapshot
