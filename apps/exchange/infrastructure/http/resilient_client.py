"""
Resilient HTTP transport.

Retry wraps the circuit breaker (the breaker is innermost), so every attempt the
retry policy makes is counted by the breaker, and an open breaker stops the
retry loop immediately, without sleeping out a back-off it could not use.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Optional

import requests

from core.settings import (
    CIRCUIT_BREAKER_BREAK_SECONDS,
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    HTTP_RETRY_BACKOFF_BASE,
    HTTP_RETRY_COUNT,
    HTTP_TIMEOUT_SECONDS,
)
from apps.exchange.domain.exceptions import CircuitOpenError, TransportError
from apps.exchange.domain.models import CircuitState

logger = logging.getLogger(__name__)

TRANSIENT_EXCEPTIONS = (requests.ConnectionError, requests.Timeout)


def is_transient_status(status_code: int) -> bool:
    return status_code == 408 or status_code >= 500


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Closed: calls pass, failures are counted.
    Open: calls fail fast with CircuitOpenError until the break duration elapses.
    Half-open: exactly one probe call passes; its outcome closes or reopens the circuit.

    State is shared by every caller of the owning client, so all transitions
    happen under a lock.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        break_duration: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.break_duration = break_duration
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state is CircuitState.OPEN and self._remaining_break() <= 0:
                return CircuitState.HALF_OPEN
            return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def _remaining_break(self) -> float:
        return self._opened_at + self.break_duration - self._clock()

    def before_call(self) -> None:
        """Admit a call or raise CircuitOpenError."""
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return

            if self._state is CircuitState.OPEN:
                remaining = self._remaining_break()
                if remaining > 0:
                    raise CircuitOpenError(remaining)
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = True
                logger.warning("Circuit half-open, letting one probe call through")
                return

            if self._probe_in_flight:
                raise CircuitOpenError(0.0)
            self._probe_in_flight = True

    def raise_if_open(self, within: float = 0.0) -> None:
        """Raise CircuitOpenError if the circuit will still be open `within` seconds from now."""
        with self._lock:
            if self._state is CircuitState.OPEN:
                remaining = self._remaining_break()
                if remaining > within:
                    raise CircuitOpenError(remaining)

    def record_success(self) -> None:
        with self._lock:
            if self._state is not CircuitState.CLOSED:
                logger.warning("Circuit closed after successful probe")
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._probe_in_flight = False
            if self._state is CircuitState.HALF_OPEN:
                self._trip()
                return
            self._failures += 1
            if self._failures >= self.failure_threshold:
                self._trip()

    def release(self) -> None:
        """Forget an admitted call that ended without an outcome (e.g. cancelled)."""
        with self._lock:
            self._probe_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._probe_in_flight = False

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._failures = 0
        logger.error("Circuit opened for %.1fs", self.break_duration)


class RetryPolicy:
    """
    Retries transient failures with exponential back-off.

    Transient: connection errors, timeouts, and 408/5xx responses. The delay
    before retry n is backoff_base ** n seconds (2s, 4s, 8s with the defaults).
    """

    def __init__(
        self,
        retries: int = 3,
        backoff_base: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.retries = retries
        self.backoff_base = backoff_base
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return self.backoff_base ** attempt

    async def execute(
        self,
        operation: Callable[[], Awaitable[requests.Response]],
        before_retry: Optional[Callable[[float], None]] = None,
    ) -> requests.Response:
        """
        Run operation until it succeeds or retries run out.

        before_retry is called with the upcoming delay and may raise to stop
        the loop without sleeping.
        """
        attempt = 0
        while True:
            try:
                response = await operation()
            except CircuitOpenError:
                raise
            except TRANSIENT_EXCEPTIONS as e:
                if attempt >= self.retries:
                    raise TransportError(
                        f"Upstream unreachable after {attempt + 1} attempts: {e}"
                    ) from e
                outcome = f"{type(e).__name__}: {e}"
            else:
                if not is_transient_status(response.status_code) or attempt >= self.retries:
                    return response
                outcome = f"status {response.status_code}"
                response.close()

            attempt += 1
            delay = self.delay_for(attempt)
            if before_retry is not None:
                before_retry(delay)
            logger.warning(
                "Transient failure (%s), retry %d/%d in %.1fs", outcome, attempt, self.retries, delay
            )
            await self.sleep(delay)


class ResilientHttpClient:
    """
    Sends requests through the retry and circuit-breaker policies.

    requests' PreparedRequest objects are consumed by a send, so every attempt
    goes out on a fresh copy of the request, with the body buffered up front.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        timeout: float = 10.0,
    ):
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.timeout = timeout

    async def send(self, request: requests.Request | requests.PreparedRequest) -> requests.Response:
        """
        Send a request and return the final response.

        The response may still carry a transient status if every retry got one.

        Raises:
            CircuitOpenError: the breaker rejected the call
            TransportError: every attempt failed at the network level
        """
        prepared = self._prepare(request)
        try:
            return await self.retry_policy.execute(
                lambda: self._attempt(prepared), before_retry=self.circuit_breaker.raise_if_open
            )
        except requests.RequestException as e:
            raise TransportError(f"Request to {prepared.url} failed: {e}") from e

    def close(self) -> None:
        self.session.close()

    async def _attempt(self, prepared: requests.PreparedRequest) -> requests.Response:
        self.circuit_breaker.before_call()
        try:
            response = await asyncio.to_thread(
                self.session.send, prepared.copy(), timeout=self.timeout
            )
        except requests.RequestException:
            self.circuit_breaker.record_failure()
            raise
        except BaseException:
            self.circuit_breaker.release()
            raise

        if is_transient_status(response.status_code):
            self.circuit_breaker.record_failure()
        else:
            self.circuit_breaker.record_success()
        return response

    def _prepare(self, request: requests.Request | requests.PreparedRequest) -> requests.PreparedRequest:
        if isinstance(request, requests.Request):
            prepared = self.session.prepare_request(request)
        else:
            prepared = request.copy()

        body = prepared.body
        if body is not None and not isinstance(body, (bytes, str)):
            buffered = body.read() if hasattr(body, "read") else b"".join(body)
            prepared.headers.pop("Transfer-Encoding", None)
            prepared.body = buffered
            prepared.prepare_content_length(buffered)
        return prepared


def build_resilient_client() -> ResilientHttpClient:
    return ResilientHttpClient(
        retry_policy=RetryPolicy(retries=HTTP_RETRY_COUNT, backoff_base=HTTP_RETRY_BACKOFF_BASE),
        circuit_breaker=CircuitBreaker(
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            break_duration=CIRCUIT_BREAKER_BREAK_SECONDS,
        ),
        timeout=HTTP_TIMEOUT_SECONDS,
    )
