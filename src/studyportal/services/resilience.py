"""Retries and a circuit breaker around Notion calls."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import ParamSpec, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class TransientError(Exception):
    """Upstream answered with a status worth retrying (429 or 5xx)."""


class CircuitOpenError(Exception):
    pass


RETRYABLE_EXCEPTIONS = (asyncio.TimeoutError, httpx.TransportError, TransientError)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Fails fast while an upstream keeps failing.

    Only ``RETRYABLE_EXCEPTIONS`` count as failures; any other error means
    the upstream answered and counts as a success.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls raise ``CircuitOpenError`` without touching the upstream. Once
    ``recovery_timeout`` seconds have passed, trial calls are let through;
    ``half_open_max_calls`` successes close it again, one failure reopens it.
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 3

    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    failure_count: int = field(default=0, init=False)
    opened_at: float = field(default=0.0, init=False)
    trial_successes: int = field(default=0, init=False)

    def allow(self) -> bool:
        if self.state is CircuitState.OPEN:
            if time.monotonic() - self.opened_at < self.recovery_timeout:
                return False
            logger.info(f"Circuit '{self.name}' half-open, letting trial calls through")
            self.state = CircuitState.HALF_OPEN
            self.trial_successes = 0
        return True

    def record_success(self) -> None:
        if self.state is CircuitState.HALF_OPEN:
            self.trial_successes += 1
            if self.trial_successes < self.half_open_max_calls:
                return
            logger.info(f"Circuit '{self.name}' closed")
            self.state = CircuitState.CLOSED
        self.failure_count = 0

    def record_failure(self, error: Exception) -> None:
        self.failure_count += 1
        if self.state is CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state is not CircuitState.OPEN:
                logger.warning(
                    f"Circuit '{self.name}' open after {self.failure_count} failures: {error!r}"
                )
            self.state = CircuitState.OPEN
            self.opened_at = time.monotonic()

    async def call(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        if not self.allow():
            raise CircuitOpenError(f"Circuit '{self.name}' is open")
        try:
            result = await func(*args, **kwargs)
        except RETRYABLE_EXCEPTIONS as e:
            self.record_failure(e)
            raise
        except Exception:
            # The upstream answered (e.g. a 404); only outages trip the circuit
            self.record_success()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.trial_successes = 0


notion_circuit = CircuitBreaker(name="notion")


async def with_retry(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    **kwargs: P.kwargs,
) -> T:  # type: ignore[return-value]
    """Await ``func`` with exponential backoff on ``RETRYABLE_EXCEPTIONS``.

    Other exceptions propagate at once; the last retryable one is re-raised
    when attempts run out.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)


def with_resilience(
    circuit_breaker: CircuitBreaker | None = None,
    max_retries: int = 3,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Wrap an async function in ``with_retry``, behind ``circuit_breaker`` if given.

    A call that exhausts its retries counts as one breaker failure.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async def attempt() -> T:
                return await with_retry(func, *args, max_attempts=max_retries, **kwargs)  # type: ignore[arg-type]

            if circuit_breaker is None:
                return await attempt()
            return await circuit_breaker.call(attempt)

        return wrapper

    return decorator
