"""Retry and circuit breaker tests."""

from unittest.mock import AsyncMock

import pytest

from studyportal.services.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    TransientError,
    with_resilience,
    with_retry,
)


@pytest.mark.asyncio
async def test_retry_until_success():
    func = AsyncMock(side_effect=[TransientError("busy"), "ok"])

    result = await with_retry(func, max_attempts=3, min_wait=0, max_wait=0)

    assert result == "ok"
    assert func.call_count == 2


@pytest.mark.asyncio
async def test_retry_gives_up():
    func = AsyncMock(side_effect=TransientError("busy"))

    with pytest.raises(TransientError):
        await with_retry(func, max_attempts=2, min_wait=0, max_wait=0)
    assert func.call_count == 2


@pytest.mark.asyncio
async def test_non_retryable_errors_pass_through():
    func = AsyncMock(side_effect=ValueError("bad"))

    with pytest.raises(ValueError):
        await with_retry(func, max_attempts=3, min_wait=0, max_wait=0)
    assert func.call_count == 1


@pytest.mark.asyncio
async def test_circuit_opens_after_threshold():
    breaker = CircuitBreaker(name="test", failure_threshold=2)
    failing = AsyncMock(side_effect=TransientError("down"))

    for _ in range(2):
        with pytest.raises(TransientError):
            await breaker.call(failing)

    assert breaker.state == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.call(AsyncMock(return_value="ok"))


@pytest.mark.asyncio
async def test_circuit_recovers_through_half_open():
    breaker = CircuitBreaker(
        name="test", failure_threshold=1, recovery_timeout=0.0, half_open_max_calls=1
    )
    with pytest.raises(TransientError):
        await breaker.call(AsyncMock(side_effect=TransientError("down")))
    assert breaker.state == CircuitState.OPEN

    assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_with_resilience_decorator():
    breaker = CircuitBreaker(name="test", failure_threshold=5)
    calls = 0

    @with_resilience(circuit_breaker=breaker, max_retries=3)
    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls < 2:
            raise TransientError("busy")
        return "ok"

    assert await flaky() == "ok"
    assert calls == 2
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_failed_trial_reopens_circuit():
    breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=0.0)
    with pytest.raises(TransientError):
        await breaker.call(AsyncMock(side_effect=TransientError("down")))

    assert breaker.allow() is True
    assert breaker.state == CircuitState.HALF_OPEN
    with pytest.raises(TransientError):
        await breaker.call(AsyncMock(side_effect=TransientError("still down")))
    assert breaker.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_answered_errors_do_not_open_circuit():
    breaker = CircuitBreaker(name="test", failure_threshold=2)
    answered = AsyncMock(side_effect=ValueError("404 from upstream"))

    for _ in range(5):
        with pytest.raises(ValueError):
            await breaker.call(answered)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0
    assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
