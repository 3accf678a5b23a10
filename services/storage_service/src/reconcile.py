import time
from typing import Callable, Optional

from opentelemetry import trace

from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    MalformedStateError,
    NotFoundError,
    PermanentError,
    RetriesExhaustedError,
    UploadError,
)
from .logging import jlog
from .outcomes import (
    Absent,
    ComplianceChecker,
    ComplianceDecision,
    Compliant,
    FailureKind,
    FetchOutcome,
    Found,
    NonCompliant,
    PermanentFailure,
    PolicyDecorator,
    ReconcileAction,
    ReconcileResult,
    TransientFailure,
)
from .retry import RetryingExecutor
from .schemas import BucketSnapshot
from .storage import BucketClient

tracer = trace.get_tracer(__name__)


class BucketReconciler:
    """Makes a bucket match a desired policy with the fewest remote calls.

    GET the bucket; if it is compliant stop, if it drifted UPDATE it to the
    decorated snapshot, and if it is missing CREATE it from a decorated default
    snapshot. A conflicting CREATE (someone else created the bucket first)
    goes back to GET, at most max_conflict_cycles times.

    Every remote call goes through the RetryingExecutor. The reconciler keeps
    no state between calls, so different buckets may be reconciled
    concurrently. Concurrent UPDATEs of the same bucket are last-write-wins.
    """

    def __init__(
        self,
        client: BucketClient,
        executor: RetryingExecutor,
        max_conflict_cycles: int = 3,
        budget_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_conflict_cycles < 0:
            raise ValueError("max_conflict_cycles must be >= 0")
        self._client = client
        self._executor = executor
        self._max_conflict_cycles = max_conflict_cycles
        self._budget_s = budget_s
        self._clock = clock

    def fetch(self, bucket_name: str) -> FetchOutcome:
        try:
            snapshot = self._executor.execute(
                lambda: self._client.get(bucket_name), f"get bucket {bucket_name}"
            )
        except NotFoundError:
            return Absent(bucket_name)
        except RetriesExhaustedError as e:
            return TransientFailure(e)
        except ForbiddenError as e:
            return PermanentFailure(FailureKind.FORBIDDEN, e)
        except ConflictError as e:
            return PermanentFailure(FailureKind.CONFLICT, e)
        except InvalidRequestError as e:
            return PermanentFailure(FailureKind.INVALID, e)
        except PermanentError as e:
            return PermanentFailure(FailureKind.OTHER, e)
        return Found(snapshot)

    def reconcile(
        self,
        bucket_name: str,
        decorator: PolicyDecorator,
        checker: ComplianceChecker,
    ) -> ReconcileResult:
        deadline = None if self._budget_s is None else self._clock() + self._budget_s

        with tracer.start_as_current_span("reconcile_bucket", attributes={"bucket.name": bucket_name}):
            reads = 0
            conflicts = 0
            created_from_default: Optional[BucketSnapshot] = None

            while True:
                self._check_deadline(deadline, bucket_name, "get bucket")
                try:
                    outcome = self.fetch(bucket_name)
                except Exception as e:
                    # Client errors outside the storage taxonomy
                    raise UploadError(bucket_name, "get bucket", e) from e
                reads += 1
                jlog(event="bucket_fetch", bucket=bucket_name, outcome=type(outcome).__name__, attempt=reads)

                if isinstance(outcome, Found):
                    verdict = self._check(checker, outcome.snapshot, bucket_name)
                    if isinstance(verdict, Compliant):
                        jlog(event="bucket_compliant", bucket=bucket_name)
                        return ReconcileResult(
                            bucket=bucket_name,
                            decision=ComplianceDecision.COMPLIANT,
                            action=ReconcileAction.NONE,
                            snapshot=verdict.snapshot,
                            reads=reads,
                            conflicts=conflicts,
                        )

                    jlog(event="bucket_drift", bucket=bucket_name, reason=verdict.reason)
                    # After a create conflict, reuse the decorated default; update() only
                    # writes the fields it carries, so the decorator still runs once
                    if created_from_default is not None:
                        desired = created_from_default
                    else:
                        desired = self._decorate(decorator, verdict.snapshot, bucket_name)
                    self._check_deadline(deadline, bucket_name, "update bucket")
                    updated = self._mutate("update bucket", bucket_name, lambda: self._client.update(desired))
                    jlog(event="bucket_updated", bucket=bucket_name)
                    return ReconcileResult(
                        bucket=bucket_name,
                        decision=ComplianceDecision.NEEDS_CORRECTION,
                        action=ReconcileAction.UPDATED,
                        snapshot=updated,
                        reads=reads,
                        conflicts=conflicts,
                    )

                if isinstance(outcome, Absent):
                    if created_from_default is None:
                        created_from_default = self._decorate(decorator, BucketSnapshot.default(bucket_name), bucket_name)
                    desired_new = created_from_default
                    self._check_deadline(deadline, bucket_name, "create bucket")
                    try:
                        created = self._executor.execute(
                            lambda: self._client.insert(desired_new), f"create bucket {bucket_name}"
                        )
                    except ConflictError:
                        conflicts += 1
                        jlog(event="bucket_create_conflict", severity="WARNING", bucket=bucket_name, conflicts=conflicts)
                        if conflicts > self._max_conflict_cycles:
                            raise UploadError(
                                bucket_name,
                                "create bucket",
                                detail=f"creation conflicted {conflicts} time(s) but the bucket could not be read back",
                            )
                        continue
                    except Exception as e:
                        raise UploadError(bucket_name, "create bucket", e) from e

                    jlog(event="bucket_created", bucket=bucket_name)
                    return ReconcileResult(
                        bucket=bucket_name,
                        decision=ComplianceDecision.ABSENT,
                        action=ReconcileAction.CREATED,
                        snapshot=created,
                        reads=reads,
                        conflicts=conflicts,
                    )

                # TransientFailure or PermanentFailure
                jlog(event="bucket_fetch_failed", severity="ERROR", bucket=bucket_name, error=str(outcome.error))
                raise UploadError(bucket_name, "get bucket", outcome.error) from outcome.error

    def _mutate(self, operation: str, bucket_name: str, call: Callable[[], BucketSnapshot]) -> BucketSnapshot:
        try:
            return self._executor.execute(call, f"{operation} {bucket_name}")
        except Exception as e:
            raise UploadError(bucket_name, operation, e) from e

    def _check(self, checker: ComplianceChecker, snapshot: BucketSnapshot, bucket_name: str):
        try:
            verdict = checker(snapshot)
        except Exception as e:
            raise UploadError(bucket_name, "check bucket policy", e) from e
        if not isinstance(verdict, (Compliant, NonCompliant)):
            raise UploadError(
                bucket_name,
                "check bucket policy",
                detail=f"checker returned {type(verdict).__name__}, expected Compliant or NonCompliant",
            )
        return verdict

    def _decorate(self, decorator: PolicyDecorator, snapshot: BucketSnapshot, bucket_name: str) -> BucketSnapshot:
        try:
            desired = decorator(snapshot)
        except Exception as e:
            error = MalformedStateError(f"policy decorator failed for bucket '{bucket_name}': {e}")
            raise UploadError(bucket_name, "decorate bucket", error) from e
        if not isinstance(desired, BucketSnapshot) or desired.name != bucket_name:
            error = MalformedStateError(f"policy decorator produced an invalid state for bucket '{bucket_name}'")
            raise UploadError(bucket_name, "decorate bucket", error)
        return desired

    def _check_deadline(self, deadline: Optional[float], bucket_name: str, operation: str) -> None:
        if deadline is not None and self._clock() > deadline:
            raise UploadError(
                bucket_name,
                operation,
                detail=f"reconciliation exceeded its {self._budget_s}s budget",
            )
