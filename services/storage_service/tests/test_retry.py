import pytest

from services.storage_service.src.config import Settings
from services.storage_service.src.exceptions import (
    NotFoundError,
    RetriesExhaustedError,
    RetryableError,
    is_transient,
)
from services.storage_service.src.retry import RetryingExecutor


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_success_on_first_attempt():
    op = Flaky([])
    assert RetryingExecutor(retries=5).execute(op) == "ok"
    assert op.calls == 1


def test_transient_errors_are_retried():
    op = Flaky([RetryableError("a"), RetryableError("b")])
    assert RetryingExecutor(retries=2).execute(op) == "ok"
    assert op.calls == 3


def test_zero_retries_means_single_attempt():
    op = Flaky([RetryableError("a")])

    with pytest.raises(RetriesExhaustedError) as exc:
        RetryingExecutor(retries=0).execute(op, "get bucket b")

    assert op.calls == 1
    assert exc.value.attempts == 1
    assert isinstance(exc.value.cause, RetryableError)
    assert "get bucket b failed after 1 attempt(s)" in str(exc.value)


def test_exhaustion_after_retries_plus_one_attempts():
    op = Flaky([RetryableError(str(i)) for i in range(10)])

    with pytest.raises(RetriesExhaustedError) as exc:
        RetryingExecutor(retries=3).execute(op)

    assert op.calls == 4
    assert exc.value.attempts == 4
    assert is_transient(exc.value)


def test_permanent_errors_propagate_immediately():
    op = Flaky([NotFoundError("missing")])

    with pytest.raises(NotFoundError):
        RetryingExecutor(retries=5).execute(op)

    assert op.calls == 1


def test_backoff_waits_between_attempts():
    op = Flaky([RetryableError("a")])
    executor = RetryingExecutor(retries=1, backoff_base_ms=1, backoff_cap_ms=2)
    assert executor.execute(op) == "ok"
    assert op.calls == 2


def test_negative_retries_rejected():
    with pytest.raises(ValueError):
        RetryingExecutor(retries=-1)


def test_from_settings():
    settings = Settings(insert_retry_count=2, retry_backoff_base_ms=10, retry_budget_s=4.0)

    executor = RetryingExecutor.from_settings(settings)

    assert executor.retries == 2
    assert executor.backoff_base_ms == 10
    assert executor.budget_s == 4.0


def test_default_retry_count_is_five():
    assert Settings().insert_retry_count == 5
