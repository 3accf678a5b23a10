from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

import requests
from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

from .config import settings
from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    PermanentError,
    RetryableError,
)
from .schemas import BucketSnapshot, LifecycleRule

# Instantiate the GCS client lazily so tests and emulators can import freely
_storage: Optional[storage.Client] = None

def _ensure_storage() -> storage.Client:
    global _storage
    if _storage is None:
        _storage = storage.Client(project=settings.project_id) if settings.project_id else storage.Client()
    return _storage

RETRYABLE_GCS_EXC = (
    gax_exceptions.TooManyRequests,
    gax_exceptions.ServerError,
    gax_exceptions.RetryError,
    auth_exceptions.TransportError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)


@contextmanager
def translate_errors(operation: str, target: str) -> Iterator[None]:
    """Maps google-cloud-storage failures onto the service's error taxonomy."""
    try:
        yield
    except gax_exceptions.NotFound as e:
        raise NotFoundError(f"{operation} {target}: not found") from e
    except gax_exceptions.Conflict as e:
        raise ConflictError(f"{operation} {target}: already exists") from e
    except (gax_exceptions.Forbidden, gax_exceptions.Unauthorized) as e:
        raise ForbiddenError(f"{operation} {target}: {e.message}") from e
    except auth_exceptions.RefreshError as e:
        # Expired or revoked credentials
        raise ForbiddenError(f"{operation} {target}: {e}") from e
    except RETRYABLE_GCS_EXC as e:
        raise RetryableError(f"{operation} {target}: {e}") from e
    except gax_exceptions.ClientError as e:
        raise InvalidRequestError(f"{operation} {target}: {e.message}") from e
    except gax_exceptions.GoogleAPICallError as e:
        raise PermanentError(f"{operation} {target}: {e}") from e
    except OSError as e:
        # Generic I/O failure on the connection or local file
        raise RetryableError(f"{operation} {target}: {e}") from e


def snapshot_from_bucket(bucket: storage.Bucket) -> BucketSnapshot:
    return BucketSnapshot(
        name=bucket.name,
        lifecycle_rules=tuple(LifecycleRule.from_gcs(dict(rule)) for rule in bucket.lifecycle_rules),
        labels=dict(bucket.labels or {}),
        storage_class=bucket.storage_class,
        location=bucket.location,
        versioning_enabled=bucket.versioning_enabled,
        metageneration=bucket.metageneration,
    )


def _apply_snapshot(bucket: storage.Bucket, desired: BucketSnapshot) -> storage.Bucket:
    bucket.lifecycle_rules = [rule.to_gcs() for rule in desired.lifecycle_rules]
    if desired.labels:
        bucket.labels = dict(desired.labels)
    if desired.storage_class:
        bucket.storage_class = desired.storage_class
    if desired.versioning_enabled is not None:
        bucket.versioning_enabled = desired.versioning_enabled
    return bucket


class BucketClient(ABC):
    """Remote operations against GCS buckets and objects.

    Implementations raise NotFoundError, ConflictError, ForbiddenError,
    InvalidRequestError (permanent) or RetryableError (transient).
    """

    @abstractmethod
    def get(self, name: str) -> BucketSnapshot:
        """Reads bucket metadata."""

    @abstractmethod
    def insert(self, desired: BucketSnapshot) -> BucketSnapshot:
        """Creates the bucket described by desired."""

    @abstractmethod
    def update(self, desired: BucketSnapshot) -> BucketSnapshot:
        """Writes desired metadata onto an existing bucket."""

    @abstractmethod
    def delete(self, name: str, force: bool = False) -> None:
        """Deletes a bucket; force also deletes its objects."""

    @abstractmethod
    def upload_file(
        self,
        bucket_name: str,
        object_name: str,
        file_path: str,
        content_type: Optional[str] = None,
        predefined_acl: Optional[str] = None,
        content_disposition: Optional[str] = None,
    ) -> None:
        """Uploads a local file to gs://bucket_name/object_name."""

    @abstractmethod
    def upload_text(
        self,
        bucket_name: str,
        object_name: str,
        text: str,
        content_type: str = "text/plain",
        predefined_acl: Optional[str] = None,
    ) -> None:
        """Uploads a text body to gs://bucket_name/object_name."""

    @abstractmethod
    def download_file(self, bucket_name: str, object_name: str, destination: str) -> None:
        """Downloads gs://bucket_name/object_name to a local path."""


class GcsBucketClient(BucketClient):
    """BucketClient backed by google-cloud-storage.

    Library-level retries are disabled (retry=None); RetryingExecutor owns the
    retry budget.
    """

    def __init__(
        self,
        client: Optional[storage.Client] = None,
        project: Optional[str] = None,
        default_location: Optional[str] = None,
    ):
        self._client = client
        self._project = project or settings.project_id
        self._default_location = default_location or settings.default_location

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = _ensure_storage()
        return self._client

    def get(self, name: str) -> BucketSnapshot:
        with translate_errors("get bucket", name):
            bucket = self.client.get_bucket(name, retry=None)
        return snapshot_from_bucket(bucket)

    def insert(self, desired: BucketSnapshot) -> BucketSnapshot:
        bucket = _apply_snapshot(self.client.bucket(desired.name), desired)
        with translate_errors("create bucket", desired.name):
            created = self.client.create_bucket(
                bucket,
                project=self._project,
                location=desired.location or self._default_location,
                retry=None,
            )
        return snapshot_from_bucket(created)

    def update(self, desired: BucketSnapshot) -> BucketSnapshot:
        # patch() sends only the fields set here; location is immutable
        bucket = _apply_snapshot(self.client.bucket(desired.name), desired)
        with translate_errors("update bucket", desired.name):
            bucket.patch(retry=None)
        return snapshot_from_bucket(bucket)

    def delete(self, name: str, force: bool = False) -> None:
        with translate_errors("delete bucket", name):
            self.client.bucket(name).delete(force=force, retry=None)

    def upload_file(
        self,
        bucket_name: str,
        object_name: str,
        file_path: str,
        content_type: Optional[str] = None,
        predefined_acl: Optional[str] = None,
        content_disposition: Optional[str] = None,
    ) -> None:
        blob = self.client.bucket(bucket_name).blob(object_name)
        if content_disposition:
            blob.content_disposition = content_disposition
        with translate_errors("upload", f"gs://{bucket_name}/{object_name}"):
            blob.upload_from_filename(
                file_path,
                content_type=content_type,
                predefined_acl=predefined_acl,
                retry=None,
            )

    def upload_text(
        self,
        bucket_name: str,
        object_name: str,
        text: str,
        content_type: str = "text/plain",
        predefined_acl: Optional[str] = None,
    ) -> None:
        blob = self.client.bucket(bucket_name).blob(object_name)
        with translate_errors("upload", f"gs://{bucket_name}/{object_name}"):
            blob.upload_from_string(
                text,
                content_type=content_type,
                predefined_acl=predefined_acl,
                retry=None,
            )

    def download_file(self, bucket_name: str, object_name: str, destination: str) -> None:
        blob = self.client.bucket(bucket_name).blob(object_name)
        with translate_errors("download", f"gs://{bucket_name}/{object_name}"):
            blob.download_to_filename(destination, retry=None)
