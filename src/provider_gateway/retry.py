"""Retry executor for provider requests.

Wraps a single logical provider call with a hard timeout, exponential
backoff, Retry-After aware rate-limit handling and circuit breaker
integration. Retries are strictly sequential; the breaker is re-checked
before every attempt so a provider that trips the breaker mid-loop stops
the loop immediately.
"""

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from .circuit_breaker import CircuitBreaker
from .errors import (
    ClientError,
    GatewayTimeoutError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)

SendFn = Callable[[], Awaitable[httpx.Response]]
SleepFn = Callable[[float], Awaitable[Any]]
ValidateFn = Callable[[Dict[str, Any]], None]


@dataclass
class RetryPolicy:
    """Retry and timeout settings for one provider.

    Attributes:
        max_retries: Additional attempts after the first one.
        timeout_seconds: Hard wall-clock deadline per attempt.
        rate_limit_base_delay: Base of the 429 backoff (seconds).
        rate_limit_max_delay: Cap of the 429 backoff (seconds).
        server_error_base_delay: Base of the 5xx/network backoff (seconds).
        server_error_max_delay: Cap of the 5xx/network backoff (seconds).
        retryable_server_statuses: Statuses treated as transient server instability.
    """

    max_retries: int = 3
    timeout_seconds: float = 50.0
    rate_limit_base_delay: float = 1.0
    rate_limit_max_delay: float = 32.0
    server_error_base_delay: float = 2.0
    server_error_max_delay: float = 16.0
    retryable_server_statuses: Tuple[int, ...] = (500, 503, 529)

    def rate_limit_backoff(self, attempt: int) -> float:
        """Delay before retrying a 429 without a usable Retry-After header."""
        return min(self.rate_limit_base_delay * (2**attempt), self.rate_limit_max_delay)

    def server_error_backoff(self, attempt: int) -> float:
        """Delay before retrying a server error, timeout or network failure."""
        return min(self.server_error_base_delay * (2**attempt), self.server_error_max_delay)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds.

    HTTP-date values, non-finite numbers and garbage return None so the
    caller falls back to exponential backoff.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


def parse_error_message(body: str, default: str) -> str:
    """Extract ``error.message`` from a provider error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return default
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return default


class RetryExecutor:
    """Executes provider calls with timeout, retries and circuit breaking.

    Example:
        executor = RetryExecutor(CircuitBreaker(provider_id="anthropic"))

        async def send():
            return await client.post(url, json=payload)

        data = await executor.execute(send)
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        provider: Optional[str] = None,
    ):
        """Initialize the retry executor.

        Args:
            breaker: Circuit breaker owned by the calling gateway.
            policy: Retry policy (defaults to RetryPolicy()).
            sleep: Awaitable sleep function, injectable for tests.
            provider: Provider name attached to raised errors and log lines.
        """
        self.breaker = breaker
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.provider = provider or breaker.provider_id

    async def execute(
        self,
        send: SendFn,
        timeout: Optional[float] = None,
        validate: Optional[ValidateFn] = None,
    ) -> Dict[str, Any]:
        """Run ``send`` until it succeeds or the retry budget is spent.

        Args:
            send: Coroutine factory performing one HTTP attempt.
            timeout: Per-attempt deadline override in seconds.
            validate: Called with the parsed body before the attempt is
                recorded as a success. Errors it raises propagate unchanged and
                are not retried.

        Returns:
            Parsed JSON body of the successful response.

        Raises:
            CircuitOpenError: Breaker is open before an attempt.
            RateLimitError: 429 on every attempt.
            ServerError: 500/503/529 or an unparseable body on every attempt.
            GatewayTimeoutError: Timeout or network failure on every attempt.
            ClientError: Any other non-2xx response (not retried).
        """
        deadline = timeout if timeout is not None else self.policy.timeout_seconds
        max_retries = self.policy.max_retries
        attempt = 0

        while True:
            self.breaker.check()
            logger.info("Calling %s, attempt %d/%d", self.provider, attempt + 1, max_retries + 1)

            try:
                response = await asyncio.wait_for(send(), timeout=deadline)
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                self.breaker.on_failure()
                logger.warning("%s request timed out after %.1fs", self.provider, deadline)
                if attempt < max_retries:
                    await self._sleep(self.policy.server_error_backoff(attempt))
                    attempt += 1
                    continue
                raise GatewayTimeoutError(
                    f"Timeout calling {self.provider} after {deadline}s",
                    provider=self.provider,
                ) from exc
            except httpx.TransportError as exc:
                self.breaker.on_failure()
                logger.warning("%s request failed: %s", self.provider, exc)
                if attempt < max_retries:
                    await self._sleep(self.policy.server_error_backoff(attempt))
                    attempt += 1
                    continue
                raise GatewayTimeoutError(
                    f"Communication with {self.provider} failed: {exc}",
                    provider=self.provider,
                ) from exc

            status = response.status_code

            if status == 429:
                self.breaker.on_failure()
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                wait = retry_after if retry_after is not None else self.policy.rate_limit_backoff(attempt)
                if attempt < max_retries:
                    logger.warning("Rate limited by %s (429). Waiting %.1fs before retry", self.provider, wait)
                    await self._sleep(wait)
                    attempt += 1
                    continue
                raise RateLimitError(
                    f"Rate limit exceeded for {self.provider}",
                    status_code=429,
                    provider=self.provider,
                    retry_after=retry_after,
                )

            if status in self.policy.retryable_server_statuses:
                self.breaker.on_failure()
                if attempt < max_retries:
                    wait = self.policy.server_error_backoff(attempt)
                    logger.warning(
                        "Server error (%d) from %s. Retrying in %.1fs (attempt %d/%d)",
                        status,
                        self.provider,
                        wait,
                        attempt + 1,
                        max_retries,
                    )
                    await self._sleep(wait)
                    attempt += 1
                    continue
                raise ServerError(
                    f"Server error from {self.provider}",
                    status_code=status,
                    provider=self.provider,
                )

            if not response.is_success:
                body = response.text
                logger.error("%s API error: %d %s", self.provider, status, body[:500])
                raise ClientError(
                    parse_error_message(body, f"{self.provider} API request failed"),
                    status_code=status,
                    provider=self.provider,
                    body=body,
                )

            try:
                data = response.json()
            except ValueError as exc:
                self.breaker.on_failure()
                logger.warning("%s returned a non-JSON body (%d)", self.provider, status)
                if attempt < max_retries:
                    await self._sleep(self.policy.server_error_backoff(attempt))
                    attempt += 1
                    continue
                raise ServerError(
                    f"Invalid response body from {self.provider}",
                    status_code=status,
                    provider=self.provider,
                ) from exc

            if validate is not None:
                validate(data)
            self.breaker.on_success()
            return data
