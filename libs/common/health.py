"""Backend health probing.

Each probe is a zero-argument coroutine function that raises on failure.
The prober times every probe and classifies the backend as unhealthy when
any probe errors or answers slower than the latency threshold.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Optional, Sequence

import httpx

from libs.common.logging import get_logger
from libs.common.network import NetworkMonitor

logger = get_logger(__name__)

HealthProbe = Callable[[], Awaitable[object]]

DEFAULT_LATENCY_THRESHOLD_MS = 5000.0
DEFAULT_PROBE_RETRY_DELAYS = (1.0, 3.0, 5.0)


@dataclass
class HealthReport:
    healthy: bool
    latency_ms: float
    error: Optional[str] = None
    services: dict[str, bool] = field(default_factory=dict)


def _is_retryable_probe_error(exc: BaseException) -> bool:
    """Rate limiting and transport failures are worth another probe."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return True
    return "too many requests" in str(exc).lower()


class HealthProber:
    """Runs named probes and reports whether the backend is usable."""

    def __init__(
        self,
        probes: Mapping[str, HealthProbe],
        *,
        latency_threshold_ms: float = DEFAULT_LATENCY_THRESHOLD_MS,
        retry_delays: Sequence[float] = DEFAULT_PROBE_RETRY_DELAYS,
        cache_seconds: float = 0.0,
        network: Optional[NetworkMonitor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.probes = dict(probes)
        self.latency_threshold_ms = latency_threshold_ms
        self.retry_delays = tuple(retry_delays)
        self.cache_seconds = cache_seconds
        self.network = network
        self._sleep = sleep
        self._clock = clock
        self._cached: Optional[HealthReport] = None
        self._cached_at: float = 0.0

    async def _run_probe(self, name: str, probe: HealthProbe) -> tuple[float, Optional[str]]:
        # Probes are bounded by the latency threshold
        deadline = self.latency_threshold_ms / 1000
        attempt = 0
        while True:
            started = self._clock()
            try:
                await asyncio.wait_for(probe(), timeout=deadline)
                return (self._clock() - started) * 1000, None
            except asyncio.TimeoutError:
                elapsed_ms = max((self._clock() - started) * 1000, self.latency_threshold_ms)
                return elapsed_ms, f"no response within {self.latency_threshold_ms:.0f}ms"
            except Exception as exc:
                elapsed_ms = (self._clock() - started) * 1000
                if attempt < len(self.retry_delays) and _is_retryable_probe_error(exc):
                    delay = self.retry_delays[attempt]
                    attempt += 1
                    logger.warning(
                        "Health probe %s failed (%s), retrying in %ss",
                        name,
                        exc,
                        delay,
                    )
                    await self._sleep(delay)
                    continue
                return elapsed_ms, str(exc) or exc.__class__.__name__

    async def check(self) -> HealthReport:
        """Probe every service and return a combined report."""
        now = time.monotonic()
        if self._cached is not None and now - self._cached_at < self.cache_seconds:
            return self._cached

        if self.network is not None and not self.network.is_online:
            return HealthReport(
                healthy=False,
                latency_ms=0.0,
                error="No internet connection",
                services={name: False for name in self.probes},
            )

        services: dict[str, bool] = {}
        errors: list[str] = []
        worst_latency = 0.0
        for name, probe in self.probes.items():
            latency_ms, error = await self._run_probe(name, probe)
            worst_latency = max(worst_latency, latency_ms)
            if error is None and latency_ms > self.latency_threshold_ms:
                error = (
                    f"response time {latency_ms:.0f}ms exceeds "
                    f"{self.latency_threshold_ms:.0f}ms"
                )
            services[name] = error is None
            if error is not None:
                errors.append(f"{name}: {error}")

        report = HealthReport(
            healthy=not errors,
            latency_ms=round(worst_latency, 2),
            error="; ".join(errors) or None,
            services=services,
        )
        if not report.healthy:
            logger.warning(
                "Backend health check failed",
                extra={"extra_fields": {
                    "latency_ms": report.latency_ms,
                    "error": report.error,
                    "services": services,
                }},
            )

        self._cached = report
        self._cached_at = now
        return report
