"""Optional background prober feeding connectivity into the registry."""

import asyncio
import logging

from switchboard.core.provider.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Periodically calls test_connection() on every live provider.

    Disabled when the interval is 0. A tick that comes due while the previous
    probe round is still running is skipped rather than overlapped.
    """

    def __init__(self, registry: ProviderRegistry, interval_seconds: float = 0) -> None:
        self.registry = registry
        self.interval_seconds = interval_seconds
        self.skipped_ticks = 0
        self.completed_rounds = 0
        self._task: asyncio.Task[None] | None = None
        self._probe: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.enabled:
            logger.debug("Health monitor disabled (interval is 0)")
            return
        if self.running:
            return
        logger.info(f"Health monitor started (every {self.interval_seconds:g}s)")
        self._task = asyncio.create_task(self._loop(), name="switchboard-health-monitor")

    async def stop(self) -> None:
        for task in (self._task, self._probe):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._task = None
        self._probe = None

    def tick(self) -> bool:
        """Start one probe round unless one is in progress; returns whether it started."""
        if self._probe is not None and not self._probe.done():
            self.skipped_ticks += 1
            logger.debug("Skipping health check tick; previous round still running")
            return False
        self._probe = asyncio.create_task(self.run_once(), name="switchboard-health-probe")
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.tick()

    async def run_once(self) -> dict[str, bool]:
        """Probe every live provider once and record the outcomes."""
        instances = self.registry.instances()
        provider_ids = [instance.provider_id for instance in instances]
        probes = [instance.client.test_connection() for instance in instances]
        results = await asyncio.gather(*probes, return_exceptions=True)

        outcome: dict[str, bool] = {}
        for provider_id, result in zip(provider_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                connected, error = False, str(result) or result.__class__.__name__
            else:
                connected, error = result.connected, result.error
            if self.registry.is_registered(provider_id):
                self.registry.record_health(provider_id, connected, error)
            outcome[provider_id] = connected

        self.completed_rounds += 1
        return outcome
