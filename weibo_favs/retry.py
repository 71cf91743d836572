from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff policy for page fetches.

    max_attempts includes the first try, so the default of 3 allows two
    retries. The n-th retry waits base_delay_seconds * 2**(n-1), capped at
    max_delay_seconds and scaled by a random factor within +/- jitter_ratio.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0 and 1")

    def delay_for(self, failed_attempt: int, *, rng: random.Random | None = None) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        steps = max(0, int(failed_attempt) - 1)
        delay = min(self.max_delay_seconds, self.base_delay_seconds * (2**steps))
        if delay <= 0 or self.jitter_ratio == 0:
            return max(0.0, float(delay))

        spread = (rng or random).uniform(-self.jitter_ratio, self.jitter_ratio)
        return max(0.0, delay * (1.0 + spread))


@dataclass(frozen=True)
class RetryEvent:
    """Reported before each wait; page is set for page fetches."""

    operation: str
    failure_attempt: int
    next_attempt: int
    max_attempts: int
    delay_seconds: float
    error_type: str
    error_message: str
    page: int | None


IsRetryableFn = Callable[[BaseException], bool]
OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], None]


def call_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig,
    is_retryable: IsRetryableFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
    page: int | None = None,
) -> T:
    """
    Run fn until it returns. A non-retryable error, or any error on the last
    allowed attempt, propagates unchanged.
    """
    name = (operation or "").strip() or "operation"
    wait = sleep_fn or time.sleep
    attempt = 1

    while True:
        try:
            return fn()
        except Exception as exc:
            if attempt >= cfg.max_attempts or not is_retryable(exc):
                raise
            failed = exc

        delay = cfg.delay_for(attempt)
        if on_retry is not None:
            on_retry(
                RetryEvent(
                    operation=name,
                    failure_attempt=attempt,
                    next_attempt=attempt + 1,
                    max_attempts=cfg.max_attempts,
                    delay_seconds=delay,
                    error_type=type(failed).__name__,
                    error_message=str(failed).strip(),
                    page=page,
                )
            )
        if delay > 0:
            wait(delay)
        attempt += 1
