from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import cast

from sdx_sentinels.errors import MissingArgumentError
from sdx_sentinels.logging import log_exception, log_info, log_warning

HealthCheck = Callable[[], bool] | Callable[[], Awaitable[bool]]
MonitorIntervalGetter = Callable[[], float]

_MIN_INTERVAL_SECONDS = 0.01
_logger = logging.getLogger(__name__)


async def _resolve_health_check(check: HealthCheck) -> bool:
    result = check()
    if inspect.isawaitable(result):
        awaited = await cast(Awaitable[object], result)
        return bool(awaited)
    return bool(result)


class ServiceSentinel:
    """Poll a health check in the background and cache the latest answer.

    A health check that raises counts as unhealthy. Disposal is permanent:
    once disposed, the sentinel neither polls nor restarts.
    """

    def __init__(
        self,
        health_check: HealthCheck,
        monitor_interval: MonitorIntervalGetter,
        *,
        is_healthy: bool = True,
        name: str = "service",
    ) -> None:
        """Initialize sentinel state; polling starts with :meth:`start`.

        Args:
            health_check: Sync or async callable returning ``True`` when the
                service is healthy.
            monitor_interval: Returns the poll interval in seconds; read
                again before every wait.
            is_healthy: Health reported until the first check completes.
            name: Sentinel name used in log events.

        Raises:
            MissingArgumentError: If ``health_check`` or ``monitor_interval``
                is ``None``.
        """
        if health_check is None:
            raise MissingArgumentError("health_check cannot be None.")
        if monitor_interval is None:
            raise MissingArgumentError("monitor_interval cannot be None.")
        self._health_check = health_check
        self._monitor_interval = monitor_interval
        self._is_healthy = is_healthy
        self._name = name
        self._is_disposed = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_healthy(self) -> bool:
        """Return the most recent health check result."""
        return self._is_healthy

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_once(self) -> bool:
        """Run the health check once and cache the result."""
        if self._is_disposed:
            return self._is_healthy
        try:
            healthy = await _resolve_health_check(self._health_check)
        except Exception:
            log_exception(
                _logger,
                "service_sentinel.check_failed",
                sentinel=self._name,
            )
            healthy = False
        if healthy != self._is_healthy:
            log_fn = log_info if healthy else log_warning
            log_fn(
                _logger,
                "service_sentinel.health_changed",
                sentinel=self._name,
                healthy=healthy,
            )
        self._is_healthy = healthy
        return healthy

    def _current_interval(self) -> float:
        try:
            interval = self._monitor_interval()
        except Exception:
            log_exception(
                _logger,
                "service_sentinel.interval_failed",
                sentinel=self._name,
            )
            return _MIN_INTERVAL_SECONDS
        return max(interval, _MIN_INTERVAL_SECONDS)

    async def _monitor_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.check_once()
            interval = self._current_interval()
            with suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=interval)

    async def start(self) -> None:
        """Start background polling if not already running or disposed."""
        if self._is_disposed or self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._monitor_loop(self._stop_event),
            name=f"service-sentinel:{self._name}",
        )

    async def _stop_task(self) -> None:
        self._stop_event.set()
        task = self._task
        if task is None:
            return
        grace_seconds = self._current_interval() + 5.0
        try:
            await asyncio.wait_for(task, timeout=grace_seconds)
        except TimeoutError:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._task = None

    async def dispose(self) -> None:
        """Stop polling permanently."""
        if self._is_disposed:
            return
        self._is_disposed = True
        await self._stop_task()


class TogglableServiceSentinel(ServiceSentinel):
    """Service sentinel whose polling can be paused and resumed."""

    async def stop(self) -> None:
        """Pause background polling; :meth:`start` resumes it."""
        if not self.is_running:
            return
        await self._stop_task()
