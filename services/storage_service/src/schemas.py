from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# -----------------------
# Bucket metadata
# -----------------------

class LifecycleRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_type: str
    storage_class: Optional[str] = None
    condition: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_gcs(cls, rule: Mapping[str, Any]) -> "LifecycleRule":
        """Build from the GCS JSON shape {"action": {"type": ...}, "condition": {...}}."""
        action = rule.get("action") or {}
        return cls(
            action_type=str(action.get("type", "")),
            storage_class=action.get("storageClass"),
            condition=dict(rule.get("condition") or {}),
        )

    def to_gcs(self) -> Dict[str, Any]:
        action: Dict[str, Any] = {"type": self.action_type}
        if self.storage_class:
            action["storageClass"] = self.storage_class
        return {"action": action, "condition": dict(self.condition)}


class BucketSnapshot(BaseModel):
    """Bucket metadata as read from GCS. A new read yields a new snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    lifecycle_rules: Tuple[LifecycleRule, ...] = ()
    labels: Dict[str, str] = Field(default_factory=dict)
    storage_class: Optional[str] = None
    location: Optional[str] = None
    versioning_enabled: Optional[bool] = None
    metageneration: Optional[int] = None

    @classmethod
    def default(cls, name: str) -> "BucketSnapshot":
        # Starting point for a bucket that does not exist yet
        return cls(name=name)

# -----------------------
# API requests/responses
# -----------------------

class BuildResult(str, Enum):
    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    NOT_BUILT = "NOT_BUILT"
    ABORTED = "ABORTED"


class LifecycleRequest(BaseModel):
    bucket: str = Field(..., description="Bucket URI of the form gs://bucket-name.")
    ttl: int = Field(..., ge=0, description="Days after which objects in the bucket are deleted.")
    variables: Dict[str, str] = Field(default_factory=dict, description="Build variables for $NAME expansion.")


class LifecycleResponse(BaseModel):
    bucket: str
    action: str
    lifecycle_rules: List[LifecycleRule] = []


class UploadRequest(BaseModel):
    bucket: str = Field(..., description="Destination URI, gs://bucket[/object/prefix].")
    workspace: str = Field(..., description="Directory the listed files are relative to.")
    files: List[str] = Field(..., min_length=1, description="Files to upload, relative to the workspace.")
    path_prefix: Optional[str] = Field(default=None, description="Leading path stripped from object names.")
    shared_publicly: bool = False
    for_failed_jobs: bool = False
    result: BuildResult = BuildResult.SUCCESS
    variables: Dict[str, str] = Field(default_factory=dict)


class LogUploadRequest(BaseModel):
    bucket: str = Field(..., description="Destination URI, gs://bucket[/object/prefix].")
    content: str
    log_name: str = Field(default="build-log.txt", min_length=1)
    shared_publicly: bool = False
    variables: Dict[str, str] = Field(default_factory=dict)


class UploadResponse(BaseModel):
    bucket: str
    objects: List[str] = []
    skipped: bool = False


class DownloadRequest(BaseModel):
    bucket_uri: str = Field(..., description="Object URI, gs://bucket/path/to/object.")
    local_directory: str
    path_prefix: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)


class DownloadResponse(BaseModel):
    object_uri: str
    local_path: str
