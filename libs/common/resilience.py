"""Resilient execution of outbound calls.

``ResilientExecutor.execute`` wraps any zero-argument coroutine function with
a connectivity gate, an optional health gate, a per-attempt timeout and
classified retries with progressive backoff:

    NotStarted -> Attempting(n) -> Succeeded | Retrying(n + 1) | Failed

Timeouts and transport failures are retried; every other exception is
re-raised untouched on the first occurrence.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import httpx

from libs.common.errors import (
    ConnectivityError,
    FailureCause,
    RequestCancelledError,
    RetriesExhaustedError,
    ServiceUnhealthyError,
)
from libs.common.health import HealthProber
from libs.common.logging import get_logger
from libs.common.network import NetworkMonitor

logger = get_logger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


class ErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    TERMINAL = "terminal"


class UpstreamServerError(Exception):
    """A 5xx response, treated like a dropped connection."""

    def __init__(self, status_code: int, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Server error {status_code} from {url}")


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT
    if isinstance(
        exc,
        (
            httpx.NetworkError,
            httpx.RemoteProtocolError,
            ConnectionError,
            UpstreamServerError,
        ),
    ):
        return ErrorKind.NETWORK
    return ErrorKind.TERMINAL


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and backoff settings for one call site (seconds)."""

    timeout: float = 15.0
    max_retries: int = 3
    retry_delays: Sequence[float] = (1.0, 3.0, 5.0)
    health_gated: bool = False

    def delay_for(self, attempt: int) -> float:
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempt, len(self.retry_delays) - 1)]


class CancellationToken:
    """Caller-held handle that stops further attempts and backoff sleeps."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ResilientExecutor:
    def __init__(
        self,
        network: NetworkMonitor,
        health: Optional[HealthProber] = None,
        *,
        default_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.network = network
        self.health = health
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    async def _ensure_online(self) -> None:
        if not await self.network.check_connection():
            raise ConnectivityError()

    async def _ensure_healthy(self) -> None:
        if self.health is None:
            return
        report = await self.health.check()
        if not report.healthy:
            raise ServiceUnhealthyError(
                f"Service is temporarily unavailable ({report.error}). "
                "Please try again shortly.",
                latency_ms=report.latency_ms,
            )

    async def _backoff(
        self, delay: float, cancel_token: Optional[CancellationToken]
    ) -> None:
        if cancel_token is None:
            await self._sleep(delay)
            return

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        if cancel_token.cancelled:
            raise RequestCancelledError()

    async def execute(
        self,
        operation: Operation,
        policy: Optional[RetryPolicy] = None,
        *,
        name: str = "request",
        cancel_token: Optional[CancellationToken] = None,
    ) -> Any:
        """Run ``operation`` under ``policy``.

        Raises:
            ConnectivityError: offline before the first attempt or after a backoff.
            ServiceUnhealthyError: the health gate failed (health-gated policies only).
            RetriesExhaustedError: every attempt timed out or hit a network error.
            RequestCancelledError: ``cancel_token`` fired.
            Exception: any terminal error from ``operation``, unchanged.
        """
        policy = policy or self.default_policy

        await self._ensure_online()
        if policy.health_gated:
            await self._ensure_healthy()

        attempts = policy.max_retries + 1
        last_kind = ErrorKind.NETWORK
        last_error: Optional[BaseException] = None

        for attempt in range(attempts):
            if cancel_token is not None and cancel_token.cancelled:
                raise RequestCancelledError()

            try:
                return await asyncio.wait_for(operation(), policy.timeout)
            except Exception as exc:
                kind = classify_error(exc)
                if kind == ErrorKind.TERMINAL:
                    raise
                last_kind, last_error = kind, exc

            if attempt == attempts - 1:
                break

            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %ss",
                name,
                attempt + 1,
                attempts,
                last_kind.value,
                delay,
                extra={"extra_fields": {
                    "operation": name,
                    "attempt": attempt + 1,
                    "error_kind": last_kind.value,
                    "delay_seconds": delay,
                }},
            )
            await self._backoff(delay, cancel_token)
            await self._ensure_online()

        cause = FailureCause.TIMEOUT if last_kind == ErrorKind.TIMEOUT else FailureCause.NETWORK
        logger.error(
            "%s failed after %d attempts (%s)", name, attempts, cause.value
        )
        raise RetriesExhaustedError(
            cause, attempts, operation=name, last_error=last_error
        ) from last_error

    async def fetch(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        policy: Optional[RetryPolicy] = None,
        *,
        name: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send an HTTP request through ``execute``.

        5xx responses are retried like network failures; 4xx responses are
        returned to the caller as-is.
        """

        async def _send() -> httpx.Response:
            response = await client.request(method, url, **kwargs)
            if response.status_code >= 500:
                raise UpstreamServerError(response.status_code, str(response.url))
            return response

        return await self.execute(
            _send, policy, name=name or f"{method} {url}", cancel_token=cancel_token
        )
