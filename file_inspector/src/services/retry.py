import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union
from loguru import logger

from services.errors import OracleError, OracleErrorKind, classify_exception

T = TypeVar("T")


def is_rate_limited(error: OracleError) -> bool:
    return error.kind is OracleErrorKind.RATE_LIMITED


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: the delay after failed attempt k (zero-indexed) is
    initial_delay * 2**k seconds. No delay follows the final attempt.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    is_retryable: Callable[[OracleError], bool] = is_rate_limited

    def delay_for(self, attempt: int) -> float:
        return self.initial_delay * (2 ** attempt)


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    attempts: int


@dataclass(frozen=True)
class Failure:
    error: OracleError
    attempts: int


RetryOutcome = Union[Success[T], Failure]


def retry_with_backoff(
    operation: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    on_backoff: Optional[Callable[[int, float, OracleError], None]] = None,
) -> RetryOutcome:
    """Run `operation` until it succeeds, fails with a non-retryable error,
    or runs out of attempts. Exceptions never escape; they are classified and
    returned as a Failure.
    """
    attempt = 0
    while True:
        try:
            return Success(value=operation(), attempts=attempt + 1)
        except Exception as e:
            error = classify_exception(e)

        if not policy.is_retryable(error) or attempt + 1 >= policy.max_attempts:
            return Failure(error=error, attempts=attempt + 1)

        delay = policy.delay_for(attempt)
        if on_backoff:
            on_backoff(attempt + 1, delay, error)
        logger.warning(f"Attempt {attempt + 1} failed ({error.kind.value}); retrying in {delay:.1f}s")
        time.sleep(delay)
        attempt += 1
