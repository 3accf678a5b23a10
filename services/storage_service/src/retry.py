from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_none,
    wait_random_exponential,
)

from .config import Settings
from .exceptions import RetriesExhaustedError, RetryableError
from .logging import jlog

T = TypeVar("T")


class RetryingExecutor:
    """Runs one remote call with a bounded retry budget.

    RetryableError consumes one retry; every other error propagates on the
    first occurrence. Once the budget is spent the last transient error is
    raised as RetriesExhaustedError.
    """

    def __init__(
        self,
        retries: int,
        backoff_base_ms: int = 0,
        backoff_cap_ms: int = 2000,
        budget_s: Optional[float] = None,
    ):
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.retries = retries
        self.backoff_base_ms = backoff_base_ms
        self.backoff_cap_ms = backoff_cap_ms
        self.budget_s = budget_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryingExecutor":
        return cls(
            retries=settings.insert_retry_count,
            backoff_base_ms=settings.retry_backoff_base_ms,
            backoff_cap_ms=settings.retry_backoff_cap_ms,
            budget_s=settings.retry_budget_s,
        )

    def _retrying(self, description: str) -> Retrying:
        max_attempts = self.retries + 1  # first try + retries
        stop = stop_after_attempt(max_attempts)
        if self.budget_s is not None:
            stop = stop | stop_after_delay(self.budget_s)

        if self.backoff_base_ms > 0:
            # Full-jitter exponential backoff
            backoff_base_s = self.backoff_base_ms / 1000.0
            backoff_cap_s = max(backoff_base_s, self.backoff_cap_ms / 1000.0)
            wait = wait_random_exponential(multiplier=backoff_base_s, max=backoff_cap_s)
        else:
            wait = wait_none()

        def _before_sleep_log(retry_state):
            sleep_s = getattr(getattr(retry_state, "next_action", None), "sleep", None)
            err = None
            if retry_state.outcome and retry_state.outcome.failed:
                err = str(retry_state.outcome.exception())
            jlog(
                event="storage_retry",
                severity="WARNING",
                operation=description,
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
                wait_s=sleep_s,
                error=err,
            )

        return Retrying(
            retry=retry_if_exception_type(RetryableError),
            stop=stop,
            wait=wait,
            reraise=True,
            before_sleep=_before_sleep_log,
        )

    def execute(self, operation: Callable[[], T], description: str = "storage operation") -> T:
        attempts = 0

        def _attempt() -> T:
            nonlocal attempts
            attempts += 1
            return operation()

        try:
            return self._retrying(description)(_attempt)
        except RetryableError as e:
            jlog(event="storage_retry_exhausted", severity="ERROR", operation=description, attempts=attempts, error=str(e))
            raise RetriesExhaustedError(description, attempts, e) from e
