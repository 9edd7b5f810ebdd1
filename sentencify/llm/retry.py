"""Retry with backoff for provider and storage calls.

Every network call to an LLM provider goes through ``with_retry``. It decides
whether a failure is worth another attempt, waits between attempts, and stops
early on cancellation or timeout:

  result = await with_retry(lambda: transport.send(payload), AI_RETRY_POLICY)

Rules:
  - A non-retryable error propagates unchanged after one attempt.
  - Retryable errors (rate limit, overload, 5xx) are retried with linear or
    exponential backoff until ``max_attempts`` is reached, then
    RetryExhaustedError is raised.
  - A per-attempt timeout raises OperationTimeoutError and is NOT retried.
  - The cancel event is checked before each attempt and while sleeping
    between attempts. An attempt already in flight is never interrupted.

``execute`` is the non-raising variant: it returns a CallResult instead.
"""

import asyncio
import enum
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from sentencify.utils.logging import log, get_logger

MODULE = "llm.retry"
logger = get_logger()

T = TypeVar("T")

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 529)
RETRYABLE_MESSAGES = ("timeout", "rate limit", "overloaded", "failed to fetch")


class Backoff(str, enum.Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class FailureReason(str, enum.Enum):
    EXHAUSTED = "exhausted"
    NON_RETRYABLE = "non_retryable"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class RetryError(Exception):
    """Base class for failures produced by the retry loop itself."""

    reason: FailureReason

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RetryExhaustedError(RetryError):
    """Raised when every allowed attempt failed with a retryable error."""

    reason = FailureReason.EXHAUSTED


class OperationCancelledError(RetryError):
    """Raised when the cancel event is set before or between attempts."""

    reason = FailureReason.CANCELLED


class OperationTimeoutError(RetryError):
    """Raised when a single attempt exceeds the policy timeout."""

    reason = FailureReason.TIMEOUT


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, how long to wait, and what counts as transient.

    ``timeout`` and ``initial_delay`` are in seconds. ``retry_all`` makes every
    exception retryable (used for local storage, where there are no status
    codes to inspect).
    """

    max_attempts: int = 3
    initial_delay: float = 5.0
    backoff: Backoff = Backoff.EXPONENTIAL
    multiplier: float = 2.0
    retryable_status_codes: tuple[int, ...] = RETRYABLE_STATUS_CODES
    retryable_messages: tuple[str, ...] = RETRYABLE_MESSAGES
    retry_all: bool = False
    on_retry: Optional[Callable[[int, BaseException, float], None]] = field(default=None, compare=False)
    cancel_event: Optional[asyncio.Event] = field(default=None, compare=False)
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")

    def with_updates(self, **changes: Any) -> "RetryPolicy":
        return replace(self, **changes)


AI_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay=5.0,
    backoff=Backoff.EXPONENTIAL,
    multiplier=2.0,
    timeout=180.0,
)

STORAGE_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay=1.0,
    backoff=Backoff.EXPONENTIAL,
    multiplier=2.0,
    retryable_status_codes=(),
    retryable_messages=(),
    retry_all=True,
    timeout=30.0,
)


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Outcome of ``execute``: a value or a failure, never both."""

    value: Optional[T] = None
    reason: Optional[FailureReason] = None
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.reason is None

    @classmethod
    def ok(cls, value: T) -> "CallResult[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, reason: FailureReason, error: BaseException) -> "CallResult[T]":
        return cls(reason=reason, error=error)


def compute_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay before the next attempt, given the 1-based failed attempt number."""
    if policy.backoff == Backoff.LINEAR:
        return policy.initial_delay * attempt
    return policy.initial_delay * (policy.multiplier ** (attempt - 1))


def error_status(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status of an exception (ours, httpx's or openai's)."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """Classify an exception as transient under ``policy``."""
    if policy.retry_all:
        return True

    status = error_status(error)
    if status is not None and status in policy.retryable_status_codes:
        return True

    message = str(error)
    # Status embedded in the message, e.g. "HTTP 429"
    if any(str(code) in message for code in policy.retryable_status_codes):
        return True

    lowered = message.lower()
    return any(fragment.lower() in lowered for fragment in policy.retryable_messages)


def _is_cancelled(policy: RetryPolicy) -> bool:
    return policy.cancel_event is not None and policy.cancel_event.is_set()


async def _sleep(delay: float, policy: RetryPolicy) -> bool:
    """Sleep for ``delay`` seconds. Returns True if cancelled while waiting."""
    if policy.cancel_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(policy.cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


class _AttemptTimedOut(Exception):
    """The per-attempt timer fired (as opposed to a TimeoutError raised by the operation)."""


async def _attempt(operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
    if not policy.timeout:
        return await operation()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + policy.timeout
    try:
        return await asyncio.wait_for(operation(), timeout=policy.timeout)
    except asyncio.TimeoutError as e:
        # A TimeoutError raised by the operation itself before the deadline
        # goes through normal classification
        if loop.time() < deadline:
            raise
        raise _AttemptTimedOut() from e


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = AI_RETRY_POLICY,
) -> T:
    """Run ``operation`` under ``policy``.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        policy: Retry policy (attempts, backoff, classification, timeout).

    Returns:
        Whatever ``operation`` returns on its first successful attempt.

    Raises:
        OperationCancelledError: cancel event set before or between attempts.
        OperationTimeoutError: one attempt exceeded ``policy.timeout``.
        RetryExhaustedError: every attempt failed with a retryable error.
        Exception: the original error, unchanged, when it is not retryable.
    """
    for attempt in range(1, policy.max_attempts + 1):
        if _is_cancelled(policy):
            log.info(logger, MODULE, "retry_cancelled", "Operation cancelled before attempt",
                     attempt=attempt)
            raise OperationCancelledError("Operation cancelled by user", attempts=attempt - 1)

        try:
            return await _attempt(operation, policy)
        except _AttemptTimedOut as e:
            log.warning(logger, MODULE, "attempt_timeout", "Attempt timed out",
                        attempt=attempt, timeout_s=policy.timeout)
            raise OperationTimeoutError(
                f"Timeout: operation did not complete in {policy.timeout:g}s",
                attempts=attempt,
                last_error=e.__cause__,
            ) from e.__cause__
        except Exception as e:
            if not is_retryable(e, policy):
                log.debug(logger, MODULE, "non_retryable", "Non-retryable error",
                          attempt=attempt, error=str(e), error_type=type(e).__name__)
                raise

            if attempt >= policy.max_attempts:
                log.warning(logger, MODULE, "retry_exhausted", "All attempts failed",
                            attempts=attempt, error=str(e), error_type=type(e).__name__)
                raise RetryExhaustedError(
                    f"Failed after {policy.max_attempts} attempts: {e}",
                    attempts=attempt,
                    last_error=e,
                ) from e

            delay = compute_delay(attempt, policy)
            if policy.on_retry is not None:
                policy.on_retry(attempt, e, delay)
            log.info(logger, MODULE, "retry_scheduled", "Retryable error, backing off",
                     attempt=attempt, delay_s=delay, error=str(e),
                     error_type=type(e).__name__)

            if await _sleep(delay, policy):
                log.info(logger, MODULE, "retry_cancelled", "Operation cancelled during backoff",
                         attempt=attempt)
                raise OperationCancelledError(
                    "Operation cancelled by user", attempts=attempt, last_error=e,
                ) from e

    # max_attempts >= 1 guarantees the loop returns or raises
    raise RetryExhaustedError(f"Failed after {policy.max_attempts} attempts",
                              attempts=policy.max_attempts)


async def execute(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = AI_RETRY_POLICY,
) -> CallResult[T]:
    """Like ``with_retry`` but returns a CallResult instead of raising."""
    try:
        return CallResult.ok(await with_retry(operation, policy))
    except RetryError as e:
        return CallResult.failed(e.reason, e)
    except Exception as e:
        return CallResult.failed(FailureReason.NON_RETRYABLE, e)


async def with_storage_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = STORAGE_RETRY_POLICY.max_attempts,
) -> T:
    """Retry a local storage operation; any exception is retryable.

    Unlike ``with_retry``, exhaustion re-raises the last storage error
    itself so callers see the database's own exception.
    """
    policy = STORAGE_RETRY_POLICY.with_updates(max_attempts=max_attempts)
    try:
        return await with_retry(operation, policy)
    except RetryExhaustedError as e:
        if e.last_error is not None:
            raise e.last_error from None
        raise


def describe_failure(error: BaseException) -> str:
    """Short, user-facing message for a terminal failure (no stack traces)."""
    if isinstance(error, OperationCancelledError):
        return "Operation cancelled by you."
    if isinstance(error, OperationTimeoutError):
        return "The AI provider took too long to answer. Please try again."
    if isinstance(error, RetryExhaustedError):
        return (
            f"The AI provider is busy or unavailable after {error.attempts} attempts. "
            "Please try again in a few minutes."
        )
    return (
        "The AI provider rejected the request. "
        f"Check your input and credentials. ({error})"
    )
