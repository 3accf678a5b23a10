import re
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import InvalidBucketPathError

GCS_SCHEME = "gs://"

_MACRO = re.compile(r"\$\{(\w+)\}|\$(\w+)")


def replace_macros(text: str, variables: Optional[Mapping[str, str]]) -> str:
    """Expand $NAME and ${NAME} from variables; unknown names are left untouched."""
    if not text or not variables:
        return text

    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1) or match.group(2)
        value = variables.get(key)
        return match.group(0) if value is None else str(value)

    return _MACRO.sub(_sub, text)


def normalize_prefix(prefix: Optional[str]) -> Optional[str]:
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix or None


def strip_path_prefix(name: str, prefix: Optional[str]) -> str:
    prefix = normalize_prefix(prefix)
    if prefix and name and name.startswith(prefix):
        return name[len(prefix):]
    return name


@dataclass(frozen=True)
class BucketPath:
    """A gs:// URI broken into bucket and object parts.

    gs://foo/bar/baz/blah.log -> bucket "foo", object "bar/baz/blah.log"
    """

    bucket: str
    object: str = ""

    @classmethod
    def parse(cls, uri: str) -> "BucketPath":
        if not uri or not uri.startswith(GCS_SCHEME):
            raise InvalidBucketPathError(f"'{uri}' must start with '{GCS_SCHEME}'")
        halves = uri[len(GCS_SCHEME):].split("/", 1)
        return cls(bucket=halves[0], object=halves[1] if len(halves) > 1 else "")

    @property
    def error(self) -> bool:
        return len(self.bucket) == 0

    @property
    def path(self) -> str:
        return self.bucket + (f"/{self.object}" if self.object else "")

    @property
    def uri(self) -> str:
        return GCS_SCHEME + self.path

    def child(self, name: str) -> "BucketPath":
        if not self.object:
            return BucketPath(self.bucket, name)
        return BucketPath(self.bucket, f"{self.object.rstrip('/')}/{name}")


def validate_bucket_uri(uri: str) -> BucketPath:
    """Checks an already macro-expanded destination URI."""
    path = BucketPath.parse(uri)
    if path.error:
        raise InvalidBucketPathError(f"'{uri}' does not name a bucket")
    if "$" in uri:
        raise InvalidBucketPathError(
            f"'{uri}' contains an unresolved '$' variable; use ${{NAME}} for build variables"
        )
    return path


def lifecycle_bucket_name(uri: str) -> str:
    """Returns the bucket named by uri, which must have no path segments."""
    path = validate_bucket_uri(uri)
    if "/" in uri[len(GCS_SCHEME):]:
        raise InvalidBucketPathError(
            f"'{uri}' has path segments; lifecycle policy applies to a whole bucket (gs://bucket-name)"
        )
    return path.bucket
