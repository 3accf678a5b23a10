"""Tagged results for the bucket reconciliation protocol.

Ordinary branches (bucket missing, bucket out of policy) are values rather
than exceptions, so the reconciler reads as a plain decision table.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .exceptions import StorageError
from .schemas import BucketSnapshot


class ComplianceDecision(str, Enum):
    COMPLIANT = "compliant"
    NEEDS_CORRECTION = "needs_correction"
    ABSENT = "absent"


class FailureKind(str, Enum):
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INVALID = "invalid"
    OTHER = "other"

# -----------------------
# GET outcomes
# -----------------------

@dataclass(frozen=True)
class Found:
    snapshot: BucketSnapshot

@dataclass(frozen=True)
class Absent:
    name: str

@dataclass(frozen=True)
class TransientFailure:
    """Retries were exhausted on a transient error."""
    error: StorageError

@dataclass(frozen=True)
class PermanentFailure:
    kind: FailureKind
    error: StorageError

FetchOutcome = Union[Found, Absent, TransientFailure, PermanentFailure]

# -----------------------
# Compliance check results
# -----------------------

@dataclass(frozen=True)
class Compliant:
    snapshot: BucketSnapshot

@dataclass(frozen=True)
class NonCompliant:
    snapshot: BucketSnapshot
    reason: str = ""

CheckResult = Union[Compliant, NonCompliant]

PolicyDecorator = Callable[[BucketSnapshot], BucketSnapshot]
ComplianceChecker = Callable[[BucketSnapshot], CheckResult]


class ReconcileAction(str, Enum):
    NONE = "none"
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class ReconcileResult:
    bucket: str
    decision: ComplianceDecision
    action: ReconcileAction
    snapshot: Optional[BucketSnapshot] = None
    reads: int = 1
    conflicts: int = 0
