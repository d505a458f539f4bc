"""Connectivity tracking for outbound calls.

A ``NetworkMonitor`` holds the last known online/offline state. State can be
pushed in (``set_online``/``set_offline``) or pulled with an optional probe,
and callers can block until connectivity returns.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from libs.common.logging import get_logger

logger = get_logger(__name__)

Probe = Callable[[], Awaitable[bool]]


def tcp_probe(host: str, port: int = 443, timeout: float = 2.0) -> Probe:
    """Build a probe that reports online when a TCP connect succeeds."""

    async def _probe() -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    return _probe


class NetworkMonitor:
    """Tracks connectivity and lets callers wait for it to come back."""

    def __init__(
        self,
        probe: Optional[Probe] = None,
        *,
        online: bool = True,
        probe_ttl: float = 5.0,
        poll_interval: float = 1.0,
    ):
        self._probe = probe
        self._probe_ttl = probe_ttl
        self._poll_interval = poll_interval
        self._online = asyncio.Event()
        self._checked_at: Optional[float] = None
        if online:
            self._online.set()

    @property
    def is_online(self) -> bool:
        return self._online.is_set()

    def set_online(self) -> None:
        if not self._online.is_set():
            logger.info("Network connection restored")
        self._online.set()

    def set_offline(self) -> None:
        if self._online.is_set():
            logger.warning("Network connection lost")
        self._online.clear()

    async def check_connection(self) -> bool:
        """Return current connectivity, refreshing via the probe when stale."""
        if self._probe is None:
            return self.is_online

        now = time.monotonic()
        if self._checked_at is not None and now - self._checked_at < self._probe_ttl:
            return self.is_online

        online = await self._probe()
        self._checked_at = now
        if online:
            self.set_online()
        else:
            self.set_offline()
        return online

    async def wait_for_connection(self, timeout: float = 30.0) -> bool:
        """Wait up to ``timeout`` seconds for connectivity.

        Returns True as soon as the monitor is online, False on timeout.
        """
        if self.is_online:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            try:
                await asyncio.wait_for(
                    self._online.wait(), min(self._poll_interval, remaining)
                )
                return True
            except asyncio.TimeoutError:
                pass
            if self._probe is not None:
                self._checked_at = None
                if await self.check_connection():
                    return True
