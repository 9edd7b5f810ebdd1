"""Tests for the retry executor."""

import asyncio

import httpx
import pytest

from sentencify.llm.retry import (
    AI_RETRY_POLICY,
    STORAGE_RETRY_POLICY,
    Backoff,
    FailureReason,
    OperationCancelledError,
    OperationTimeoutError,
    RetryExhaustedError,
    RetryPolicy,
    compute_delay,
    describe_failure,
    execute,
    is_retryable,
    with_retry,
    with_storage_retry,
)
from sentencify.llm.transport import ProviderError

NO_WAIT = RetryPolicy(max_attempts=3, initial_delay=0.0)


class Flaky:
    """Operation that fails ``failures`` times with ``error`` then returns 'ok'."""

    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


# =============================================================================
# Classification
# =============================================================================

class TestIsRetryable:

    def test_status_code_attribute(self):
        assert is_retryable(ProviderError("boom", status_code=503), NO_WAIT)

    def test_status_code_not_listed(self):
        assert not is_retryable(ProviderError("bad request", status_code=400), NO_WAIT)

    def test_status_numeral_in_message(self):
        assert is_retryable(RuntimeError("HTTP 429 from upstream"), NO_WAIT)

    def test_message_substring_case_insensitive(self):
        assert is_retryable(RuntimeError("Server OVERLOADED, try later"), NO_WAIT)
        assert is_retryable(RuntimeError("Rate Limit exceeded"), NO_WAIT)
        assert is_retryable(RuntimeError("request timeout"), NO_WAIT)

    def test_plain_error_not_retryable(self):
        assert not is_retryable(ValueError("invalid api key"), NO_WAIT)

    def test_httpx_response_status(self):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(502, request=request)
        error = httpx.HTTPStatusError("bad gateway", request=request, response=response)
        assert is_retryable(error, NO_WAIT)

    def test_storage_policy_retries_anything(self):
        assert is_retryable(ValueError("disk full"), STORAGE_RETRY_POLICY)


# =============================================================================
# Backoff
# =============================================================================

class TestComputeDelay:

    def test_linear(self):
        policy = RetryPolicy(initial_delay=2.0, backoff=Backoff.LINEAR)
        assert [compute_delay(n, policy) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]

    def test_exponential(self):
        policy = RetryPolicy(initial_delay=5.0, backoff=Backoff.EXPONENTIAL, multiplier=2.0)
        assert [compute_delay(n, policy) for n in (1, 2, 3)] == [5.0, 10.0, 20.0]

    def test_named_policies(self):
        assert AI_RETRY_POLICY.max_attempts == 3
        assert AI_RETRY_POLICY.initial_delay == 5.0
        assert AI_RETRY_POLICY.backoff == Backoff.EXPONENTIAL
        assert STORAGE_RETRY_POLICY.initial_delay == 1.0
        assert STORAGE_RETRY_POLICY.retry_all

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


# =============================================================================
# with_retry / execute
# =============================================================================

class TestWithRetry:

    async def test_success_after_retryable_failures(self):
        op = Flaky(2, ProviderError("HTTP 503", status_code=503))
        assert await with_retry(op, NO_WAIT) == "ok"
        assert op.calls == 3

    async def test_non_retryable_propagates_unchanged(self):
        error = ProviderError("invalid x-api-key", status_code=401)
        op = Flaky(5, error)
        with pytest.raises(ProviderError) as exc:
            await with_retry(op, NO_WAIT)
        assert exc.value is error
        assert op.calls == 1

    async def test_exhausted_reports_attempts(self):
        op = Flaky(10, ProviderError("HTTP 529", status_code=529))
        with pytest.raises(RetryExhaustedError) as exc:
            await with_retry(op, NO_WAIT)
        assert op.calls == 3
        assert exc.value.attempts == 3
        assert "3 attempts" in str(exc.value)
        assert exc.value.reason == FailureReason.EXHAUSTED

    async def test_on_retry_receives_attempt_and_delay(self):
        seen = []
        policy = NO_WAIT.with_updates(
            initial_delay=0.001,
            backoff=Backoff.LINEAR,
            on_retry=lambda attempt, error, delay: seen.append((attempt, delay)),
        )
        op = Flaky(2, RuntimeError("rate limit"))
        assert await with_retry(op, policy) == "ok"
        assert seen == [(1, 0.001), (2, 0.002)]

    async def test_cancelled_before_first_attempt(self):
        event = asyncio.Event()
        event.set()
        op = Flaky(0, RuntimeError("unused"))
        with pytest.raises(OperationCancelledError):
            await with_retry(op, NO_WAIT.with_updates(cancel_event=event))
        assert op.calls == 0

    async def test_cancelled_during_backoff(self):
        event = asyncio.Event()
        policy = NO_WAIT.with_updates(
            initial_delay=30.0,
            cancel_event=event,
            on_retry=lambda *_: event.set(),
        )
        op = Flaky(5, RuntimeError("overloaded"))
        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(with_retry(op, policy), timeout=2.0)
        assert op.calls == 1

    async def test_timeout_is_terminal(self):
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            await asyncio.sleep(1.0)

        with pytest.raises(OperationTimeoutError):
            await with_retry(slow, NO_WAIT.with_updates(timeout=0.01))
        assert calls == 1

    async def test_operation_timeout_error_without_policy_timeout(self):
        op = Flaky(1, TimeoutError("upstream read timeout"))
        assert await with_retry(op, NO_WAIT) == "ok"
        assert op.calls == 2

    async def test_operation_timeout_error_with_policy_timeout(self):
        op = Flaky(1, TimeoutError("upstream read timeout"))
        assert await with_retry(op, NO_WAIT.with_updates(timeout=5.0)) == "ok"
        assert op.calls == 2

    async def test_storage_policy_retries_inner_timeout(self, monkeypatch):
        monkeypatch.setattr(
            "sentencify.llm.retry.STORAGE_RETRY_POLICY",
            STORAGE_RETRY_POLICY.with_updates(initial_delay=0.0),
        )
        op = Flaky(2, asyncio.TimeoutError())
        assert await with_storage_retry(op) == "ok"
        assert op.calls == 3


class TestExecute:

    async def test_success(self):
        result = await execute(Flaky(0, RuntimeError()), NO_WAIT)
        assert result.success
        assert result.value == "ok"
        assert result.reason is None

    async def test_non_retryable(self):
        error = ValueError("malformed request")
        result = await execute(Flaky(1, error), NO_WAIT)
        assert not result.success
        assert result.reason == FailureReason.NON_RETRYABLE
        assert result.error is error
        assert result.value is None

    async def test_exhausted(self):
        result = await execute(Flaky(9, RuntimeError("HTTP 500")), NO_WAIT)
        assert result.reason == FailureReason.EXHAUSTED

    async def test_timeout(self):
        async def slow():
            await asyncio.sleep(1.0)

        result = await execute(slow, NO_WAIT.with_updates(timeout=0.01))
        assert result.reason == FailureReason.TIMEOUT


class TestStorageRetry:

    async def test_reraises_last_storage_error(self, monkeypatch):
        monkeypatch.setattr(
            "sentencify.llm.retry.STORAGE_RETRY_POLICY",
            STORAGE_RETRY_POLICY.with_updates(initial_delay=0.0),
        )
        op = Flaky(10, KeyError("row"))
        with pytest.raises(KeyError):
            await with_storage_retry(op)
        assert op.calls == 3

    async def test_recovers(self, monkeypatch):
        monkeypatch.setattr(
            "sentencify.llm.retry.STORAGE_RETRY_POLICY",
            STORAGE_RETRY_POLICY.with_updates(initial_delay=0.0),
        )
        assert await with_storage_retry(Flaky(1, OSError("locked"))) == "ok"


class TestDescribeFailure:

    def test_messages_are_distinct(self):
        messages = {
            describe_failure(RetryExhaustedError("x", attempts=3)),
            describe_failure(OperationCancelledError("x")),
            describe_failure(OperationTimeoutError("x")),
            describe_failure(ValueError("bad key")),
        }
        assert len(messages) == 4

    def test_exhausted_says_try_again(self):
        assert "try again" in describe_failure(RetryExhaustedError("x", attempts=3)).lower()

    def test_non_retryable_points_to_input(self):
        assert "credentials" in describe_failure(ValueError("bad key"))
